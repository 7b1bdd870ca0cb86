from setuptools import setup, find_namespace_packages

setup(
    name='image-commit',
    version='0.1',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src'),
    python_requires='>=3.9',
    install_requires=[
        'pydantic>=2',
        'PyYAML',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
)

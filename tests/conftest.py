"""In-memory stand-ins for the store, transports and collaborators used by commit."""

import collections
import hashlib
import io
import itertools
import json

import pytest

from image_commit.builder import Builder, ContainerConfig, DockerConfig, ImageConfig
from image_commit.commit import Committer
from image_commit.digest import GZIPPED_EMPTY_LAYER, canonical_digest, verify_digest
from image_commit.storage import Container, Image, Layer
from image_commit.transports import BlobInfo, StoreTransport

BASE_IMAGE_NAME = "base:1.0"


class FailureInjector:
    """Raises an error from a named operation on its Nth call."""

    def __init__(self):
        self._faults = {}
        self.counts = collections.Counter()

    def fail(self, operation, exc=None, on_call=1):
        self._faults[operation] = (on_call, exc or RuntimeError(f"injected failure in {operation}"))

    def check(self, operation):
        self.counts[operation] += 1
        fault = self._faults.get(operation)
        if fault and self.counts[operation] == fault[0]:
            raise fault[1]


class TrackedStream(io.BytesIO):
    pass


class FakeStore:
    def __init__(self, faults):
        self.faults = faults
        self.layers = {}
        self.layer_contents = {}
        self.images = {}
        self.big_data = {}
        self.containers = {}
        self.streams = []
        self._ids = itertools.count(1)

    def new_id(self, prefix):
        return hashlib.sha256(f"{prefix}-{next(self._ids)}".encode()).hexdigest()

    # Setup helpers, not part of the Store interface.
    def add_layer(self, parent="", contents=b""):
        layer = Layer(id=self.new_id("layer"), parent=parent)
        self.layers[layer.id] = layer
        self.layer_contents[layer.id] = contents
        return layer

    def add_image(self, layer_id, names=(), big_data=None):
        image = Image(id=self.new_id("image"), top_layer=layer_id, names=list(names))
        self.images[image.id] = image
        self.big_data[image.id] = dict(big_data or {})
        return image

    def find_image(self, id_or_name):
        if id_or_name in self.images:
            return self.images[id_or_name]
        for image in self.images.values():
            if id_or_name in image.names:
                return image
        raise KeyError(f"image not known: {id_or_name}")

    def images_named(self, name):
        return [image for image in self.images.values() if name in image.names]

    def remove_image(self, image_id):
        del self.images[image_id]
        self.big_data.pop(image_id, None)

    def _rebind(self, image_id, names):
        for other_id, other in list(self.images.items()):
            if other_id != image_id and set(other.names) & set(names):
                kept = [n for n in other.names if n not in names]
                self.images[other_id] = Image(other.id, other.top_layer, kept, other.metadata)

    # Store interface.
    def put_layer(self, parent, diff):
        self.faults.check("put_layer")
        if parent and parent not in self.layers:
            raise KeyError(f"layer not known: {parent}")
        return self.add_layer(parent=parent, contents=diff.read())

    def delete_layer(self, layer_id):
        self.faults.check("delete_layer")
        del self.layers[layer_id]
        del self.layer_contents[layer_id]

    def diff(self, from_layer, to_layer):
        self.faults.check("diff")
        stream = TrackedStream(self.layer_contents[to_layer])
        self.streams.append(stream)
        return stream

    def create_image(self, layer_id, names=None, metadata=""):
        self.faults.check("create_image")
        if layer_id not in self.layers:
            raise KeyError(f"layer not known: {layer_id}")
        names = list(names or [])
        image = self.add_image(layer_id)
        self._rebind(image.id, names)
        image = Image(image.id, layer_id, names, metadata)
        self.images[image.id] = image
        return image

    def delete_image(self, image_id, commit=True):
        self.faults.check("delete_image")
        self.remove_image(image_id)

    def list_image_big_data(self, image_id):
        self.faults.check("list_image_big_data")
        return list(self.big_data[image_id])

    def image_big_data(self, image_id, key):
        self.faults.check("image_big_data")
        return self.big_data[image_id][key]

    def set_image_big_data(self, image_id, key, data):
        self.faults.check("set_image_big_data")
        self.big_data[image_id][key] = bytes(data)

    def set_metadata(self, image_id, metadata):
        self.faults.check("set_metadata")
        image = self.images[image_id]
        self.images[image_id] = Image(image.id, image.top_layer, image.names, metadata)

    def container(self, container_id):
        self.faults.check("container")
        return self.containers[container_id]

    def image(self, image_id):
        self.faults.check("image")
        return self.find_image(image_id)

    def set_names(self, image_id, names):
        self.faults.check("set_names")
        image = self.images[image_id]
        self._rebind(image_id, names)
        self.images[image_id] = Image(image.id, image.top_layer, list(names), image.metadata)


class FakeStorageDestination:
    """Stages blobs and a manifest; creates the image only on commit."""

    def __init__(self, ref, extra_big_data):
        self.ref = ref
        self.blobs = []
        self.manifest = None
        self.extra_big_data = extra_big_data
        self.committed = False
        self.closed = False

    @property
    def faults(self):
        return self.ref.store.faults

    def put_blob(self, stream, info):
        self.faults.check("put_blob")
        data = stream.read()
        digest = canonical_digest(data)
        if info.digest and not verify_digest(data, info.digest):
            raise ValueError(f"digest mismatch: {info.digest} != {digest}")
        if info.size >= 0 and info.size != len(data):
            raise ValueError("size mismatch")
        self.blobs.append((data, info))
        return BlobInfo(digest=digest, size=len(data))

    def put_manifest(self, manifest):
        self.faults.check("put_manifest")
        self.manifest = manifest

    def commit(self):
        self.faults.check("commit")
        store = self.ref.store
        manifest = json.loads(self.manifest)
        layer_digests = {entry["digest"] for entry in manifest["layers"]}
        parent = ""
        for data, _ in self.blobs:
            if canonical_digest(data) in layer_digests:
                parent = store.add_layer(parent=parent, contents=data).id
        big_data = {
            canonical_digest(data): data
            for data, _ in self.blobs
            if canonical_digest(data) == manifest["config"]["digest"]
        }
        big_data["manifest"] = self.manifest
        big_data.update(self.extra_big_data)
        store.add_image(parent, names=[self.ref.name], big_data=big_data)
        self.committed = True

    def close(self):
        self.closed = True


class FakeStorageReference:
    def __init__(self, transport, store, name):
        self._transport = transport
        self.store = store
        self.name = name

    @property
    def transport(self):
        return self._transport

    def docker_reference(self):
        return self.name

    def string_within_transport(self):
        return f"[fake]{self.name}"

    def new_image(self, system_context=None):
        raise NotImplementedError

    def new_image_destination(self, system_context=None):
        self.store.faults.check("new_image_destination")
        destination = FakeStorageDestination(self, self._transport.extra_big_data)
        self._transport.destinations.append(destination)
        return destination

    def delete_image(self, system_context=None):
        image = self.store.find_image(self.name)
        self._transport.deleted[self.name] = dict(self.store.big_data[image.id])
        self.store.remove_image(image.id)
        layer_id = image.top_layer
        while layer_id:
            layer = self.store.layers.pop(layer_id)
            self.store.layer_contents.pop(layer_id)
            layer_id = layer.parent


class FakeStorageTransport(StoreTransport):
    def __init__(self, faults):
        self.faults = faults
        self.destinations = []
        self.deleted = {}
        self.extra_big_data = {}

    def parse_store_reference(self, store, reference):
        self.faults.check("parse_store_reference")
        return FakeStorageReference(self, store, reference)

    def get_store_image(self, store, ref):
        self.faults.check("get_store_image")
        return store.find_image(ref.name)


class UnnamedStorageReference(FakeStorageReference):
    def docker_reference(self):
        return None


class FakeTransport:
    def __init__(self, name):
        self.name = name

    def parse_reference(self, reference):
        return FakeRemoteReference(self, reference)


class FakeRemoteReference:
    def __init__(self, transport, name):
        self.transport = transport
        self.name = name

    def docker_reference(self):
        return self.name.lstrip("/") or None

    def string_within_transport(self):
        return self.name

    def new_image(self, system_context=None):
        raise NotImplementedError

    def new_image_destination(self, system_context=None):
        raise NotImplementedError

    def delete_image(self, system_context=None):
        raise NotImplementedError


class FakeImageView:
    def __init__(self, ref):
        self.ref = ref
        self.closed = False

    def config_blob(self):
        self.ref.faults.check("config_blob")
        return self.ref.config

    def manifest(self):
        self.ref.faults.check("manifest")
        return self.ref.manifest_bytes, self.ref.manifest_type

    def close(self):
        self.closed = True


class FakeSourceReference:
    transport = FakeTransport("container-image")

    def __init__(self, faults, config, manifest_type):
        self.faults = faults
        self.config = config
        self.manifest_type = manifest_type
        self.manifest_bytes = json.dumps(
            {
                "schemaVersion": 2,
                "mediaType": manifest_type,
                "config": {"digest": canonical_digest(config), "size": len(config)},
                "layers": [
                    {
                        "digest": canonical_digest(GZIPPED_EMPTY_LAYER),
                        "size": len(GZIPPED_EMPTY_LAYER),
                    }
                ],
            }
        ).encode("utf-8")
        self.views = []

    def docker_reference(self):
        return None

    def string_within_transport(self):
        return "working-container"

    def new_image(self, system_context=None):
        self.faults.check("new_image")
        view = FakeImageView(self)
        self.views.append(view)
        return view


class FakeSourceViews:
    def __init__(self, faults):
        self.faults = faults
        self.config_override = None
        self.container_calls = []
        self.image_calls = []
        self.refs = []

    def _config(self, builder):
        if self.config_override is not None:
            return self.config_override
        return json.dumps(
            {
                "architecture": "amd64",
                "os": "linux",
                "config": {"Cmd": builder.config.cmd, "Env": builder.config.env},
                "rootfs": {"type": "layers", "diff_ids": []},
            }
        ).encode("utf-8")

    def make_container_image_ref(self, builder, manifest_type, exporting, compression, history_timestamp):
        self.faults.check("make_container_image_ref")
        self.container_calls.append(
            {
                "builder": builder,
                "manifest_type": manifest_type,
                "exporting": exporting,
                "compression": compression,
                "history_timestamp": history_timestamp,
            }
        )
        ref = FakeSourceReference(self.faults, self._config(builder), manifest_type)
        self.refs.append(ref)
        return ref

    def make_image_image_ref(self, builder, compression, names, layer_id, history_timestamp):
        self.faults.check("make_image_image_ref")
        self.image_calls.append(
            {
                "builder": builder,
                "compression": compression,
                "names": list(names),
                "layer_id": layer_id,
                "history_timestamp": history_timestamp,
            }
        )
        ref = FakeSourceReference(
            self.faults, self._config(builder), "application/vnd.oci.image.manifest.v1+json"
        )
        self.refs.append(ref)
        return ref


class FakeCopier:
    def __init__(self, faults):
        self.faults = faults
        self.calls = []

    def copy_image(self, policy_context, dest, src, options):
        self.faults.check("copy_image")
        self.calls.append(
            {"policy_context": policy_context, "dest": dest, "src": src, "options": options}
        )


class FakeImporter:
    def __init__(self, faults):
        self.faults = faults
        self.docker = DockerConfig(
            parent="sha256:" + "ab" * 32,
            container_config=ContainerConfig(image="sha256:" + "cd" * 32),
        )
        self.calls = []

    def import_builder_from_image(self, store, image, signature_policy_path=None):
        self.faults.check("import_builder_from_image")
        self.calls.append((image, signature_policy_path))
        return Builder(
            store=store,
            container_id="",
            config=ImageConfig(cmd=["/bin/sh"]),
            docker=self.docker,
        )


@pytest.fixture
def faults():
    return FailureInjector()


@pytest.fixture
def store(faults):
    store = FakeStore(faults)
    base_layer = store.add_layer(contents=b"base-rootfs")
    base = store.add_image(base_layer.id, names=[BASE_IMAGE_NAME], big_data={"manifest": b"{}"})
    ctr_layer = store.add_layer(parent=base_layer.id, contents=b"changed-files")
    store.containers["ctr"] = Container(id="ctr", layer_id=ctr_layer.id, image_id=base.id)
    scratch_layer = store.add_layer(contents=b"")
    store.containers["scratch"] = Container(id="scratch", layer_id=scratch_layer.id)
    return store


@pytest.fixture
def base_image(store):
    return store.find_image(BASE_IMAGE_NAME)


@pytest.fixture
def storage_transport(faults):
    return FakeStorageTransport(faults)


@pytest.fixture
def registry_transport():
    return FakeTransport("docker")


@pytest.fixture
def source_views(faults):
    return FakeSourceViews(faults)


@pytest.fixture
def copier(faults):
    return FakeCopier(faults)


@pytest.fixture
def importer(faults):
    return FakeImporter(faults)


@pytest.fixture
def builder(store, base_image):
    return Builder(
        store=store,
        container_id="ctr",
        from_image=BASE_IMAGE_NAME,
        from_image_id=base_image.id,
        config=ImageConfig(cmd=["/app/run"], env=["PATH=/usr/bin"]),
    )


@pytest.fixture
def scratch_builder(store):
    return Builder(store=store, container_id="scratch", config=ImageConfig(cmd=["/hello"]))


@pytest.fixture
def policy_path(tmp_path):
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"default": [{"type": "insecureAcceptAnything"}]}))
    return path


@pytest.fixture
def committer(source_views, copier):
    return Committer(source_views, copier)


@pytest.fixture
def storage_ref(storage_transport, store):
    def make(name="myimage:latest"):
        return FakeStorageReference(storage_transport, store, name)

    return make


@pytest.fixture
def unnamed_storage_ref(storage_transport, store):
    return UnnamedStorageReference(storage_transport, store, "")

import unittest
from typing import Protocol

import pytest

from bindery import Container


class Filesystem(Protocol):
    def read(self) -> str: ...


class LocalFilesystem:
    def read(self) -> str:
        return "local"


class CloudFilesystem:
    def read(self) -> str:
        return "cloud"


class PhotoController:
    def __init__(self, files: Filesystem):
        self.files = files


class VideoController:
    def __init__(self, files: Filesystem):
        self.files = files


class Mailer:
    def __init__(self, host: str, port: int = 25):
        self.host = host
        self.port = port


class TestContextualBindings(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.bind(Filesystem, LocalFilesystem)

    def test_contextual_concrete_applies_only_inside_consumer(self):
        self.cont.when(PhotoController).needs(Filesystem).give(CloudFilesystem)

        assert isinstance(self.cont.make(PhotoController).files, CloudFilesystem)
        assert isinstance(self.cont.make(VideoController).files, LocalFilesystem)
        assert isinstance(self.cont.make(Filesystem), LocalFilesystem)

    def test_when_accepts_several_consumers(self):
        self.cont.when(PhotoController, VideoController).needs(Filesystem).give(CloudFilesystem)

        assert isinstance(self.cont.make(PhotoController).files, CloudFilesystem)
        assert isinstance(self.cont.make(VideoController).files, CloudFilesystem)

    def test_contextual_factory(self):
        cloud = CloudFilesystem()
        self.cont.when(PhotoController).needs(Filesystem).give(lambda container: cloud)

        assert self.cont.make(PhotoController).files is cloud

    def test_contextual_build_bypasses_shared_instance(self):
        self.cont.singleton(Filesystem, LocalFilesystem)
        shared = self.cont.make(Filesystem)
        self.cont.when(PhotoController).needs(Filesystem).give(CloudFilesystem)

        assert isinstance(self.cont.make(PhotoController).files, CloudFilesystem)
        assert self.cont.make(VideoController).files is shared
        assert self.cont.make(Filesystem) is shared

    def test_contextual_binding_registered_under_an_alias(self):
        self.cont.when(PhotoController).needs("files").give(CloudFilesystem)
        self.cont.alias(Filesystem, "files")

        assert isinstance(self.cont.make(PhotoController).files, CloudFilesystem)
        assert isinstance(self.cont.make(VideoController).files, LocalFilesystem)

    def test_consumer_and_need_given_by_dotted_path(self):
        self.cont.when(f"{__name__}.PhotoController").needs(f"{__name__}.Filesystem").give(CloudFilesystem)

        assert isinstance(self.cont.make(f"{__name__}.PhotoController").files, CloudFilesystem)
        assert isinstance(self.cont.make(PhotoController).files, CloudFilesystem)
        assert isinstance(self.cont.make(VideoController).files, LocalFilesystem)

    def test_consumer_given_by_alias_is_normalized(self):
        self.cont.alias(PhotoController, "photos")
        self.cont.when("photos").needs(Filesystem).give(CloudFilesystem)

        assert isinstance(self.cont.make("photos").files, CloudFilesystem)


class TestContextualPrimitives(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_primitive_value(self):
        self.cont.when(Mailer).needs("$host").give("smtp.example.org")

        mailer = self.cont.make(Mailer)
        assert mailer.host == "smtp.example.org"
        assert mailer.port == 25

    def test_primitive_factory_receives_container(self):
        self.cont.instance("config.mail.port", 2525)
        self.cont.when(Mailer).needs("$host").give("smtp.example.org")
        self.cont.when(Mailer).needs("$port").give(lambda container: container.make("config.mail.port"))

        assert self.cont.make(Mailer).port == 2525

    def test_parameter_override_wins_over_contextual_primitive(self):
        self.cont.when(Mailer).needs("$host").give("smtp.example.org")

        assert self.cont.make(Mailer, {"host": "localhost"}).host == "localhost"


def test_give_without_needs_raises():
    c = Container()

    with pytest.raises(ValueError, match="needs"):
        c.when(Mailer).give("x")


def test_contextual_scope_is_innermost_consumer_only():
    c = Container()

    class Inner:
        def __init__(self, files: Filesystem):
            self.files = files

    class Outer:
        def __init__(self, inner: Inner, files: Filesystem):
            self.inner = inner
            self.files = files

    c.bind(Filesystem, LocalFilesystem)
    c.when(Outer).needs(Filesystem).give(CloudFilesystem)

    outer = c.make(Outer)
    assert isinstance(outer.files, CloudFilesystem)
    assert isinstance(outer.inner.files, LocalFilesystem)

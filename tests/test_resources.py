import pytest

from ipfscrawl.resources import (
    AnnotatedResource,
    InvalidResourceError,
    Protocol,
    Reference,
    RequestError,
    Resource,
    ResourceType,
    SourceType,
    UnexpectedResponseError,
    UnsupportedTypeError,
)

CID = "QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp"
PARENT = "QmafrLBfzRLV4XSH1XcaMMeaXEUhDJjmtDfsYU95TrWG87"


def test_annotated_resource_defaults():
    r = AnnotatedResource(Resource(Protocol.IPFS, CID))
    assert r.source is SourceType.UNKNOWN
    assert r.type is ResourceType.UNDEFINED
    assert r.size == 0
    assert r.reference.parent is None
    assert r.parent is None


def test_annotated_resource_properties():
    parent = Resource(Protocol.IPFS, PARENT)
    r = AnnotatedResource(
        Resource(Protocol.IPFS, CID),
        reference=Reference(parent, "fileName.pdf"),
        type=ResourceType.FILE,
        size=3431,
    )
    assert r.id == CID
    assert r.protocol is Protocol.IPFS
    assert r.parent == parent


def test_default_references_are_independent():
    a = AnnotatedResource(Resource(Protocol.IPFS, CID))
    b = AnnotatedResource(Resource(Protocol.IPFS, CID))
    a.reference.name = "changed"
    assert b.reference.name == ""


def test_equality_of_copies():
    parent = Resource(Protocol.IPFS, PARENT)
    a = AnnotatedResource(Resource(Protocol.IPFS, CID), reference=Reference(parent, "dirName"))
    b = AnnotatedResource(Resource(Protocol.IPFS, CID), reference=Reference(parent, "dirName"))
    assert a == b
    b.type = ResourceType.DIRECTORY
    assert not a == b


def test_string_forms_mention_ids_and_name():
    parent = Resource(Protocol.IPFS, PARENT)
    r = AnnotatedResource(Resource(Protocol.IPFS, CID), reference=Reference(parent, "fileName.pdf"))
    text = str(r)
    assert CID in text
    assert PARENT in text
    assert "fileName.pdf" in str(r.reference)


def test_unreferenced_string_is_resource():
    r = AnnotatedResource(Resource(Protocol.IPFS, CID))
    assert str(r) == str(r.resource)
    assert CID in str(r)


def test_unsupported_type_is_invalid_resource():
    err = UnsupportedTypeError()
    assert isinstance(err, InvalidResourceError)
    assert str(err) == "unsupported type"


def test_invalid_resource_error_with_detail():
    err = InvalidResourceError("test error")
    assert str(err).startswith("resource invalid")
    assert str(err).endswith("test error")
    assert err.detail == "test error"


def test_invalid_resource_error_without_detail():
    assert str(InvalidResourceError()) == "resource invalid"


@pytest.mark.parametrize("cls", [RequestError, UnexpectedResponseError])
def test_service_errors_are_not_invalid_resources(cls):
    err = cls("detail")
    assert not isinstance(err, InvalidResourceError)
    assert str(err).endswith("detail")
import httpx
import pytest

from ipfscrawl.documents import File
from ipfscrawl.extraction import BodyGetter, FileTooLargeError
from ipfscrawl.nsfw import NSFWConfig, NSFWExtractor, is_compatible
from ipfscrawl.resources import (
    AnnotatedResource,
    Protocol,
    RequestError,
    Resource,
    UnexpectedResponseError,
)

TEST_CID = "QmehHHRh1a7u66r7fugebp6f6wGNMGCa7eho9cgjwhAcm2"
NSFW_URL = "http://nsfw.test"

TEST_JSON = b"""
{
  "classification": {
    "neutral": 0.9980410933494568,
    "drawing": 0.001135041005909443,
    "porn": 0.00050011818530038,
    "hentai": 0.00016194644558709115,
    "sexy": 0.00016178081568796188
  },
  "modelCid": "QmfBNCmYLxwTr3CHaknd5HdzA6uXcTZqn1hsuLf8mRc3xS",
  "nsfwServerVersion": "0.9.0"
}
"""


def resource(size=0, protocol=Protocol.IPFS):
    return AnnotatedResource(resource=Resource(protocol, TEST_CID), size=size)


def make_extractor(handler, **config):
    calls = []

    def recording(request):
        calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    cfg = NSFWConfig(nsfw_server_url=NSFW_URL, **config)
    return NSFWExtractor(cfg, BodyGetter(client)), calls


def test_default_config():
    cfg = NSFWConfig()
    assert cfg.nsfw_server_url == "http://localhost:3000"
    assert cfg.request_timeout == 300.0
    assert cfg.max_file_size == 1024 * 1024 * 1024


def test_extract_url():
    extractor, _ = make_extractor(lambda r: httpx.Response(200))
    assert extractor.extract_url(resource()) == NSFW_URL + "/classify/" + TEST_CID


@pytest.mark.parametrize(
    "content_type, expected",
    [
        ("image/jpeg", True),
        ("image/png", True),
        ("image/gif", True),
        ("image/bmp", True),
        (["image/png; charset=binary"], True),
        ("image/unsupported", False),
        ("text/html", False),
        ("", False),
    ],
)
def test_is_compatible(content_type, expected):
    f = File(metadata={"Content-Type": content_type})
    assert is_compatible(resource(), f) is expected


def test_is_compatible_without_content_type():
    assert is_compatible(resource(), File()) is False


def test_is_compatible_invalid_protocol():
    f = File(metadata={"Content-Type": "image/jpeg"})
    assert is_compatible(resource(protocol=Protocol.INVALID), f) is False


def test_is_compatible_invalid_field_type():
    f = File(metadata={"Content-Type": 5})
    with pytest.raises(TypeError):
        is_compatible(resource(), f)


@pytest.mark.asyncio
async def test_extract():
    def handler(request):
        if request.method == "GET" and request.url.path == "/classify/" + TEST_CID:
            return httpx.Response(200, content=TEST_JSON)
        return httpx.Response(404)

    extractor, calls = make_extractor(handler)
    f = File(metadata={"Content-Type": "image/bmp"})

    await extractor.extract(resource(size=400), f)

    assert len(calls) == 1
    assert f.nsfw is not None
    assert f.nsfw.classification.neutral == 0.9980410933494568
    assert f.nsfw.classification.drawing == 0.001135041005909443
    assert f.nsfw.classification.porn == 0.00050011818530038
    assert f.nsfw.classification.hentai == 0.00016194644558709115
    assert f.nsfw.classification.sexy == 0.00016178081568796188
    assert f.nsfw.nsfw_server_version == "0.9.0"
    assert f.nsfw.model_cid == "QmfBNCmYLxwTr3CHaknd5HdzA6uXcTZqn1hsuLf8mRc3xS"


@pytest.mark.asyncio
async def test_extract_max_file_size():
    extractor, calls = make_extractor(lambda r: httpx.Response(200, content=TEST_JSON), max_file_size=100)
    f = File(metadata={"Content-Type": "image/jpeg"})

    with pytest.raises(FileTooLargeError):
        await extractor.extract(resource(size=101), f)
    assert calls == []
    assert f.nsfw is None


@pytest.mark.asyncio
async def test_extract_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    extractor, _ = make_extractor(handler)
    f = File(metadata={"Content-Type": "image/jpeg"})

    with pytest.raises(RequestError):
        await extractor.extract(resource(), f)
    assert f.nsfw is None


@pytest.mark.asyncio
async def test_server_500():
    extractor, calls = make_extractor(lambda r: httpx.Response(500, content=b"{}"))
    f = File(metadata={"Content-Type": "image/jpeg"})

    with pytest.raises(UnexpectedResponseError):
        await extractor.extract(resource(), f)
    assert len(calls) == 1
    assert f.nsfw is None


@pytest.mark.asyncio
async def test_extract_invalid_json():
    extractor, calls = make_extractor(lambda r: httpx.Response(200, content=b"invalid JSON"))
    f = File(metadata={"Content-Type": "image/jpeg"})

    with pytest.raises(UnexpectedResponseError):
        await extractor.extract(resource(size=400), f)
    assert len(calls) == 1
    assert f.nsfw is None


@pytest.mark.asyncio
async def test_incompatible_type():
    extractor, calls = make_extractor(lambda r: httpx.Response(200, content=TEST_JSON))
    f = File(metadata={"Content-Type": "image/unsupported"})

    await extractor.extract(resource(size=400), f)

    assert calls == []
    assert f.nsfw is None


@pytest.mark.asyncio
async def test_extract_requires_file():
    extractor, calls = make_extractor(lambda r: httpx.Response(200, content=TEST_JSON))
    with pytest.raises(TypeError):
        await extractor.extract(resource(), {"Content-Type": "image/jpeg"})
    assert calls == []
import json
from datetime import datetime, timezone

import cbor2
import lz4.frame
import pytest

from ipfscrawl.documents import (
    NSFW,
    Directory,
    DocumentReference,
    File,
    Invalid,
    Link,
    LinkType,
    Partial,
    Update,
    apply_json,
    decode_references,
    encode_references,
    to_json,
)

TEST_REFS = [
    DocumentReference("QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp", "reference1"),
    DocumentReference("QmafrLBfzRLV4XSH1XcaMMeaXEUhDJjmtDfsYU95TrWG87", "reference2"),
    DocumentReference("sdfsdfsdfsd", "thrd"),
    DocumentReference("sdfsdfsdfsd", "thrd"),
    DocumentReference("sdfsdfsdfsd", "thrd"),
    DocumentReference("sdfsdfsdfsd", "thrd"),
]

TIKA_JSON = """
{
  "metadata": {
    "title": ["How Filecoin Supports Video Storage"],
    "Content-Type": ["text/html; charset=UTF-8"]
  },
  "content": "The Filecoin Space Race is now live! Learn More\\n\\t\\t Thank you!",
  "language": {"language": "en", "confidence": "HIGH", "rawScore": 0.99999505},
  "urls": [
    "https://filecoin.io/uploads/video-storage-social.png",
    "https://proto.school/#/tutorials?course=filecoin"
  ],
  "ipfs_tika_version": "dev-build"
}
"""


def test_references_round_trip():
    data = encode_references(TEST_REFS)
    assert data
    assert decode_references(data) == TEST_REFS


def test_references_are_lz4_framed_cbor_arrays():
    data = encode_references(TEST_REFS)
    assert data[:4] == b"\x04\x22\x4d\x18"
    raw = cbor2.loads(lz4.frame.decompress(data))
    assert raw[0] == ["QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp", "reference1"]
    assert len(raw) == len(TEST_REFS)


def test_empty_references_round_trip():
    assert decode_references(encode_references([])) == []


def test_decode_references_rejects_garbage():
    with pytest.raises(ValueError):
        decode_references(b"not lz4 at all")


def test_decode_references_rejects_bad_entries():
    data = lz4.frame.compress(cbor2.dumps([["only-one"]]))
    with pytest.raises(ValueError):
        decode_references(data)


def test_empty_update_omits_everything():
    assert to_json(Update()) == {}


def test_update_round_trip():
    now = datetime(2020, 7, 21, 16, 40, 44, tzinfo=timezone.utc)
    update = Update(last_seen=now, references=TEST_REFS[:2])
    encoded = to_json(update)
    assert set(encoded) == {"last-seen", "references"}
    assert encoded["references"][0] == {
        "parent_hash": "QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp",
        "name": "reference1",
    }
    assert apply_json(Update(), json.dumps(encoded)) == update


def test_time_with_fraction_decodes():
    update = apply_json(Update(), {"last-seen": "2020-07-21T16:40:44.668009Z"})
    assert update.last_seen == datetime(2020, 7, 21, 16, 40, 44, 668009, tzinfo=timezone.utc)
    assert to_json(update)["last-seen"] == "2020-07-21T16:40:44.668009Z"


def test_zero_time_format():
    assert to_json(File())["first-seen"] == "0001-01-01T00:00:00Z"


def test_file_without_nsfw_omits_key():
    encoded = to_json(File())
    assert "nfsw" not in encoded
    assert encoded["metadata"] == {}


def test_file_with_nsfw_uses_nfsw_key():
    file = File(nsfw=NSFW(nsfw_server_version="0.9.0"))
    encoded = to_json(file)
    assert encoded["nfsw"]["nsfwServerVersion"] == "0.9.0"
    assert apply_json(File(), encoded).nsfw == file.nsfw


def test_apply_tika_json_to_file():
    file = File(size=400)
    apply_json(file, TIKA_JSON)
    assert file.size == 400
    assert file.metadata["title"] == ["How Filecoin Supports Video Storage"]
    assert file.language.language == "en"
    assert file.language.raw_score == 0.99999505
    assert "https://proto.school/#/tutorials?course=filecoin" in file.urls
    assert file.ipfs_tika_version == "dev-build"


def test_apply_json_rejects_invalid_json():
    with pytest.raises(ValueError):
        apply_json(File(), "invalid JSON")


def test_apply_json_rejects_type_mismatch():
    with pytest.raises(ValueError):
        apply_json(File(), {"size": "large"})


def test_apply_json_into_dict_merges():
    target = {"a": 1}
    assert apply_json(target, '{"b": 2}') == {"a": 1, "b": 2}


def test_directory_links_encoding():
    directory = Directory(
        size=23,
        links=[Link("QmafrLBfzRLV4XSH1XcaMMeaXEUhDJjmtDfsYU95TrWG87", "fileName.pdf", 3431, LinkType.FILE)],
    )
    encoded = to_json(directory)
    assert encoded["links"] == [
        {
            "Hash": "QmafrLBfzRLV4XSH1XcaMMeaXEUhDJjmtDfsYU95TrWG87",
            "Name": "fileName.pdf",
            "Size": 3431,
            "Type": "File",
        }
    ]
    assert apply_json(Directory(), encoded) == directory


def test_invalid_and_partial_encoding():
    assert to_json(Invalid(error="unsupported type")) == {"error": "unsupported type"}
    assert to_json(Partial()) == {}
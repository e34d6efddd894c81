# -*- coding: utf-8 -*-
import json
from datetime import timezone

import pytest

from xcodelink.errors import LinkStateNotFoundError, MalformedLinkStateError
from xcodelink.state import LinkState, LinkStateStore, SavedXCFrameworkInfo

TOKEN = SavedXCFrameworkInfo(
    file_reference_id="AA0000000000000000000008",
    build_file_ids=["AA0000000000000000000009"],
    group_id="AA0000000000000000000003",
    original_path="Carthage/Build/Subscription.xcframework",
    original_name="Subscription.xcframework",
)


def test_write_then_read(tmp_path):
    store = LinkStateStore(tmp_path)
    written = store.write(True, "subscription", TOKEN)
    assert store.exists()
    assert store.path == tmp_path / ".xcodelink-state.json"

    state = store.read()
    assert state.enabled is True
    assert state.mapping == "subscription"
    assert state.saved_xcframework_info == TOKEN
    assert state.timestamp.tzinfo is not None
    assert state.timestamp == written.timestamp.replace(microsecond=0)


def test_json_layout(tmp_path):
    store = LinkStateStore(tmp_path)
    store.write(True, "subscription", TOKEN)
    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert set(data) == {"enabled", "mapping", "timestamp", "savedXCFrameworkInfo"}
    assert data["savedXCFrameworkInfo"] == {
        "fileReferenceId": "AA0000000000000000000008",
        "buildFileIds": ["AA0000000000000000000009"],
        "groupId": "AA0000000000000000000003",
        "originalPath": "Carthage/Build/Subscription.xcframework",
        "originalName": "Subscription.xcframework",
    }


def test_write_without_token(tmp_path):
    store = LinkStateStore(tmp_path)
    store.write(True, "subscription")
    assert store.read().saved_xcframework_info is None
    assert json.loads(store.path.read_text(encoding="utf-8"))["savedXCFrameworkInfo"] is None


def test_write_leaves_no_temporary_files(tmp_path):
    store = LinkStateStore(tmp_path)
    store.write(True, "subscription", TOKEN)
    store.write(True, "subscription")
    assert [p.name for p in tmp_path.iterdir()] == [".xcodelink-state.json"]


def test_read_accepts_zulu_timestamps(tmp_path):
    store = LinkStateStore(tmp_path)
    store.path.write_text(json.dumps({
        "enabled": True,
        "mapping": "subscription",
        "timestamp": "2024-03-01T10:15:30Z",
    }), encoding="utf-8")
    state = store.read()
    assert state.timestamp.tzinfo == timezone.utc
    assert state.saved_xcframework_info is None


def test_clear(tmp_path):
    store = LinkStateStore(tmp_path)
    store.write(True, "subscription")
    assert store.clear() is True
    assert not store.exists()
    assert store.clear() is False


def test_read_missing(tmp_path):
    with pytest.raises(LinkStateNotFoundError):
        LinkStateStore(tmp_path).read()


@pytest.mark.parametrize("content", [
    "{ not json",
    "[]",
    '{"enabled": true}',
    '{"enabled": true, "mapping": "subscription", "timestamp": "ieri"}',
    '{"enabled": true, "mapping": "s", "timestamp": "2024-03-01T10:15:30Z", "savedXCFrameworkInfo": {"groupId": null}}',
])
def test_read_malformed(tmp_path, content):
    store = LinkStateStore(tmp_path)
    store.path.write_text(content, encoding="utf-8")
    with pytest.raises(MalformedLinkStateError):
        store.read()


def test_custom_file_name(tmp_path):
    store = LinkStateStore(tmp_path, ".altro-stato.json")
    store.write(False, "subscription")
    assert (tmp_path / ".altro-stato.json").exists()
    assert isinstance(store.read(), LinkState)

"""
Tests for the backup archive codec.

Tests cover:
- Encoding and decoding of JSON and binary entries
- Deterministic output for identical inputs
- Fatal failures (not a ZIP, missing or bad metadata, unsupported version)
- Tolerated problems (unparsable optional entries, unknown components)
- Image filename conventions and old id recovery
"""

import io
import json
import zipfile

import pytest

from folio_engine.services.archive_codec import (
    ArchiveCodec,
    ARTWORKS_PATH,
    LEGACY_SETTINGS_PATH,
    METADATA_PATH,
    SETTINGS_PATH,
    image_entry_path,
    recover_old_id,
    sanitize_title,
)
from folio_engine.services.backup_errors import (
    ArchiveTooLarge,
    CorruptArchive,
    UnsupportedArchiveVersion,
)
from folio_engine.services.backup_types import Component

OLD_ID = "a1a1a1a1-0000-4000-8000-000000000001"


def _metadata(components=("artworks",), version=1):
    return {"version": version, "created_at": "2024-03-01T12:00:00+00:00", "components": list(components)}


def _raw_zip(files):
    """Build a ZIP directly, bypassing the codec."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        for name, payload in files.items():
            zipf.writestr(name, payload)
    return buffer.getvalue()


class TestEncodeDecode:

    def test_json_and_binary_entries_survive(self):
        codec = ArchiveCodec()
        records = [{"old_id": OLD_ID, "title": "Sunset", "tags": ["oil"]}]
        image_path = image_entry_path(OLD_ID, "Sunset", "jpg")
        data = codec.encode({
            METADATA_PATH: _metadata(),
            ARTWORKS_PATH: records,
            image_path: b"\xff\xd8fake-jpeg",
        })

        decoded = codec.decode(data)

        assert decoded.metadata.version == 1
        assert decoded.components == [Component.ARTWORKS]
        assert decoded.json_entries[ARTWORKS_PATH] == records
        assert decoded.binary_entries[image_path] == b"\xff\xd8fake-jpeg"
        assert decoded.image_entries() == {image_path: b"\xff\xd8fake-jpeg"}
        assert decoded.warnings == []

    def test_unicode_json_round_trips(self):
        codec = ArchiveCodec()
        settings = {"site_title": "Atelier Été", "accent": "#ff0000"}
        data = codec.encode({METADATA_PATH: _metadata(["settings"]), SETTINGS_PATH: settings})

        present, value = codec.decode(data).component_entry(Component.SETTINGS)
        assert present
        assert value == settings

    def test_identical_inputs_encode_identically(self):
        codec = ArchiveCodec()
        entries = {
            METADATA_PATH: _metadata(),
            ARTWORKS_PATH: [{"old_id": OLD_ID, "title": "Sunset"}],
            image_entry_path(OLD_ID, "Sunset"): b"bytes",
        }
        assert codec.encode(entries) == codec.encode(dict(entries))

    def test_unsafe_path_is_rejected(self):
        with pytest.raises(ValueError):
            ArchiveCodec().encode({"../escape.json": {}})

    def test_non_bytes_binary_entry_is_rejected(self):
        with pytest.raises(TypeError):
            ArchiveCodec().encode({"art/images/x.jpg": "not bytes"})


class TestDecodeFailures:

    def test_not_a_zip(self):
        with pytest.raises(CorruptArchive):
            ArchiveCodec().decode(b"definitely not a zip file")

    def test_missing_metadata(self):
        data = _raw_zip({ARTWORKS_PATH: "[]"})
        with pytest.raises(CorruptArchive, match="No backup metadata"):
            ArchiveCodec().decode(data)

    def test_unparsable_metadata(self):
        data = _raw_zip({METADATA_PATH: "{not json"})
        with pytest.raises(CorruptArchive):
            ArchiveCodec().decode(data)

    def test_metadata_without_components(self):
        data = _raw_zip({METADATA_PATH: json.dumps({"version": 1, "created_at": "x"})})
        with pytest.raises(CorruptArchive):
            ArchiveCodec().decode(data)

    def test_unsupported_version(self):
        data = _raw_zip({METADATA_PATH: json.dumps(_metadata(version=2))})
        with pytest.raises(UnsupportedArchiveVersion):
            ArchiveCodec().decode(data)

    def test_unsupported_version_is_a_corrupt_archive(self):
        assert issubclass(UnsupportedArchiveVersion, CorruptArchive)

    def test_size_limit(self):
        data = _raw_zip({METADATA_PATH: json.dumps(_metadata()), "art/images/big.jpg": b"x" * 5000})
        with pytest.raises(ArchiveTooLarge):
            ArchiveCodec(max_archive_bytes=1000).decode(data)


class TestDecodeTolerance:

    def test_legacy_string_version_and_export_date(self):
        data = _raw_zip({
            METADATA_PATH: json.dumps({"version": "1.0", "export_date": "2023-01-01T00:00:00Z", "components": []}),
        })
        decoded = ArchiveCodec().decode(data)
        assert decoded.metadata.version == 1
        assert decoded.metadata.created_at == "2023-01-01T00:00:00Z"

    def test_unparsable_optional_entry_becomes_warning(self):
        data = _raw_zip({
            METADATA_PATH: json.dumps(_metadata(["artworks", "settings"])),
            ARTWORKS_PATH: "[]",
            SETTINGS_PATH: "{broken",
        })
        decoded = ArchiveCodec().decode(data)

        assert decoded.json_entries[ARTWORKS_PATH] == []
        assert SETTINGS_PATH not in decoded.json_entries
        assert any(SETTINGS_PATH in w for w in decoded.warnings)

    def test_extra_entries_are_kept(self):
        data = _raw_zip({METADATA_PATH: json.dumps(_metadata()), "notes/readme.txt": b"hello"})
        decoded = ArchiveCodec().decode(data)
        assert decoded.binary_entries["notes/readme.txt"] == b"hello"
        assert decoded.image_entries() == {}

    def test_unknown_component_is_ignored(self):
        data = _raw_zip({METADATA_PATH: json.dumps(_metadata(["artworks", "blog"]))})
        decoded = ArchiveCodec().decode(data)
        assert decoded.components == [Component.ARTWORKS]
        assert any("blog" in w for w in decoded.warnings)

    def test_legacy_settings_path(self):
        data = _raw_zip({
            METADATA_PATH: json.dumps(_metadata(["settings"])),
            LEGACY_SETTINGS_PATH: json.dumps({"theme": "dark"}),
        })
        present, value = ArchiveCodec().decode(data).component_entry(Component.SETTINGS)
        assert present
        assert value == {"theme": "dark"}

    def test_missing_component_entry(self):
        data = _raw_zip({METADATA_PATH: json.dumps(_metadata(["profile"]))})
        present, value = ArchiveCodec().decode(data).component_entry(Component.PROFILE)
        assert not present
        assert value is None


class TestFilenameConvention:

    def test_sanitize_title(self):
        assert sanitize_title("Sunset #1 - Study") == "Sunset__1___Study"
        assert sanitize_title("") == ""

    def test_image_entry_path(self):
        assert image_entry_path(OLD_ID, "Blue Hour", "PNG") == f"art/images/{OLD_ID}-Blue_Hour.png"

    def test_recover_old_id(self):
        assert recover_old_id(f"{OLD_ID}-Sunset.jpg") == OLD_ID
        assert recover_old_id(f"art/images/{OLD_ID}-Blue_Hour.png") == OLD_ID
        assert recover_old_id(f"{OLD_ID}.jpg") == OLD_ID

    def test_recover_old_id_without_uuid_prefix(self):
        assert recover_old_id("Sunset.jpg") is None
        assert recover_old_id("a-b-c-d-e-Sunset.jpg") is None
        assert recover_old_id("a1a1a1a1-Sunset.jpg") is None

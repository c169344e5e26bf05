"""
Tests for the metadata restore engine.

Tests cover:
- Row counts in add and replace mode
- Fresh ids, forced ownership and the old_id -> new_id mapping
- Per-component failure isolation, including image cleanup errors after commit
- Singleton components (settings, profile) including avatar re-upload
"""

import pytest

from folio_engine.models.portfolio import Artwork
from folio_engine.repositories import ArtworkRepository, ProfileRepository, SettingsRepository
from folio_engine.services.account_resolver import Unauthorized
from folio_engine.services.archive_codec import (
    ArchiveCodec,
    ARTWORKS_PATH,
    METADATA_PATH,
    PROFILE_PATH,
    SETTINGS_PATH,
)
from folio_engine.services.backup_types import Component, RestoreMode
from folio_engine.services.restore_service import MetadataRestoreService

ID_1 = "a1a1a1a1-0000-4000-8000-000000000001"
ID_2 = "a1a1a1a1-0000-4000-8000-000000000002"


def _archive(components, entries=None):
    """Encode then decode so tests see exactly what a real restore sees."""
    files = {METADATA_PATH: {"version": 1, "created_at": "2024-03-01T12:00:00+00:00", "components": components}}
    files.update(entries or {})
    codec = ArchiveCodec()
    return codec.decode(codec.encode(files))


def _artworks_archive(records, components=("artworks",)):
    return _archive(list(components), {ARTWORKS_PATH: records})


def _records(*ids):
    return [{"old_id": old_id, "title": f"Piece {n}"} for n, old_id in enumerate(ids, start=1)]


def test_add_mode_keeps_existing_rows(db, storage, account, add_artwork):
    add_artwork(account.id, title="Existing")

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(_records(ID_1, ID_2)), ["artworks"], "add"
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success
    assert result.count == 2
    assert result.deleted == 0
    assert ArtworkRepository(db).count_by_account(account.id) == 3


def test_replace_mode_deletes_existing_rows_and_images(db, storage, account, add_artwork):
    old = [add_artwork(account.id, title=f"Old {i}", with_image=True) for i in range(3)]
    old_paths = [a.storage_path for a in old]

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(_records(ID_1, ID_2)), ["artworks"], RestoreMode.REPLACE
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success
    assert result.count == 2
    assert result.deleted == 3
    titles = sorted(a.title for a in ArtworkRepository(db).list_by_account(account.id))
    assert titles == ["Piece 1", "Piece 2"]
    for path in old_paths:
        assert not (storage.root / path).exists()


def test_replace_mode_leaves_other_accounts_alone(db, storage, account, other_account, add_artwork):
    add_artwork(other_account.id, title="Not yours")

    MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(_records(ID_1)), ["artworks"], "replace"
    )

    assert ArtworkRepository(db).count_by_account(other_account.id) == 1


def test_mapping_has_every_old_id_once(db, storage, account):
    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(_records(ID_1, ID_2)), ["artworks"], "add"
    )

    mapping = outcome.artwork_id_mapping
    assert list(mapping) == [ID_1, ID_2]
    assert ID_1 not in mapping.values()
    assert len(set(mapping.values())) == 2
    for old_id, new_id in mapping.items():
        artwork = ArtworkRepository(db).get_for_account(new_id, account.id)
        assert artwork is not None


def test_ownership_is_forced_to_acting_account(db, storage, account, other_account):
    records = [{
        "old_id": ID_1,
        "id": "ffffffff-0000-4000-8000-000000000000",
        "account_id": other_account.id,
        "user_id": other_account.id,
        "title": "Sunset",
        "status": "draft",
        "created_at": "2020-06-01T10:00:00Z",
    }]

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(records), ["artworks"], "add"
    )

    artwork = db.query(Artwork).filter(Artwork.id == outcome.artwork_id_mapping[ID_1]).one()
    assert artwork.account_id == account.id
    assert artwork.status == "published"
    assert artwork.created_at.year == 2020
    assert ArtworkRepository(db).count_by_account(other_account.id) == 0


def test_legacy_records_use_id_as_old_id(db, storage, account):
    records = [{"id": ID_1, "title": "Sunset", "tags": "oil, landscape", "year_created": "2019"}]

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(records), ["artworks"], "add"
    )

    artwork = ArtworkRepository(db).get_for_account(outcome.artwork_id_mapping[ID_1], account.id)
    assert artwork.tags == ["oil", "landscape"]
    assert artwork.year_created == 2019


def test_record_without_id_is_restored_with_warning(db, storage, account):
    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive([{"title": "Anonymous"}]), ["artworks"], "add"
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success
    assert result.count == 1
    assert outcome.artwork_id_mapping == {}
    assert result.details["warnings"]


def test_component_not_in_backup(db, storage, account):
    archive = _archive(["settings"], {SETTINGS_PATH: {"theme": "dark"}})

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, archive, ["artworks", "settings"], "add"
    )

    assert outcome.results[Component.ARTWORKS].success is False
    assert outcome.results[Component.ARTWORKS].error == "Component not found in backup"
    assert outcome.results[Component.SETTINGS].success is True
    assert outcome.artwork_id_mapping == {}


def test_failed_component_does_not_stop_others(db, storage, account, add_artwork):
    add_artwork(account.id, title="Keep me")
    archive = _archive(
        ["artworks", "settings"],
        {ARTWORKS_PATH: {"not": "a list"}, SETTINGS_PATH: {"theme": "dark"}},
    )

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, archive, ["artworks", "settings"], "replace"
    )

    assert outcome.results[Component.ARTWORKS].success is False
    assert outcome.artwork_id_mapping == {}
    assert outcome.results[Component.SETTINGS].success is True
    assert ArtworkRepository(db).count_by_account(account.id) == 1
    assert SettingsRepository(db).get(account.id).settings == {"theme": "dark"}


def test_duplicate_old_ids_fail_artworks(db, storage, account):
    records = [{"old_id": ID_1, "title": "One"}, {"old_id": ID_1, "title": "Two"}]

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(records), ["artworks"], "add"
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success is False
    assert "Duplicate" in result.error
    assert ArtworkRepository(db).count_by_account(account.id) == 0


def test_blank_titles_restore_as_untitled(db, storage, account):
    records = [{"old_id": ID_1}, {"old_id": ID_2, "title": "   "}]

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(records), ["artworks"], "add"
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success
    assert result.count == 2
    for old_id in (ID_1, ID_2):
        artwork = ArtworkRepository(db).get_for_account(outcome.artwork_id_mapping[old_id], account.id)
        assert artwork.title == "Untitled"


def test_replace_mode_survives_image_cleanup_failure(db, storage, account, add_artwork, monkeypatch):
    add_artwork(account.id, title="Old", with_image=True)

    def denied(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("folio_engine.services.image_storage.shutil.rmtree", denied)

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _artworks_archive(_records(ID_1, ID_2)), ["artworks"], "replace"
    )

    result = outcome.results[Component.ARTWORKS]
    assert result.success
    assert result.count == 2
    assert result.deleted == 1
    assert list(outcome.artwork_id_mapping) == [ID_1, ID_2]
    titles = sorted(a.title for a in ArtworkRepository(db).list_by_account(account.id))
    assert titles == ["Piece 1", "Piece 2"]


def test_settings_add_mode_merges(db, storage, account):
    SettingsRepository(db).upsert(account.id, {"theme": "light", "site_title": "Old"})
    db.commit()
    archive = _archive(["settings"], {SETTINGS_PATH: {"site_title": "New", "account_id": "someone"}})

    MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["settings"], "add")

    assert SettingsRepository(db).get(account.id).settings == {"theme": "light", "site_title": "New"}


def test_settings_replace_mode_overwrites(db, storage, account):
    SettingsRepository(db).upsert(account.id, {"theme": "light", "site_title": "Old"})
    db.commit()
    archive = _archive(["settings"], {SETTINGS_PATH: {"site_title": "New"}})

    outcome = MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["settings"], "replace")

    assert outcome.results[Component.SETTINGS].deleted == 1
    assert SettingsRepository(db).get(account.id).settings == {"site_title": "New"}


def test_profile_avatar_is_reuploaded(db, storage, account, make_image):
    avatar = make_image("PNG")
    archive = _archive(
        ["profile"],
        {
            PROFILE_PATH: {
                "bio": "Painter",
                "avatar_type": "uploaded",
                "avatar_url": "https://old-site.example.com/avatars/me.png",
                "user_id": "someone-else",
            },
            "profile/avatar.png": avatar,
        },
    )

    outcome = MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["profile"], "replace")

    result = outcome.results[Component.PROFILE]
    assert result.success
    assert result.details["avatar_restored"] is True
    record = ProfileRepository(db).get(account.id).record
    assert "user_id" not in record
    assert record["avatar_url"].startswith(storage.url_for(f"avatars/{account.id}/restored-"))
    assert record["avatar_url"].endswith(".png")
    assert storage.get(storage.key_from_url(record["avatar_url"])) == avatar


def _avatar_archive(avatar):
    return _archive(
        ["profile"],
        {PROFILE_PATH: {"avatar_type": "uploaded", "avatar_url": "x"}, "profile/avatar.png": avatar},
    )


def test_each_avatar_restore_gets_its_own_object(db, storage, account, make_image):
    first_avatar = make_image("PNG", color=(10, 10, 10))
    second_avatar = make_image("PNG", color=(250, 250, 250))
    service = MetadataRestoreService(db, storage)

    service.restore_metadata(account.id, _avatar_archive(first_avatar), ["profile"], "replace")
    first_url = ProfileRepository(db).get(account.id).record["avatar_url"]
    service.restore_metadata(account.id, _avatar_archive(second_avatar), ["profile"], "replace")
    second_url = ProfileRepository(db).get(account.id).record["avatar_url"]

    assert first_url != second_url
    assert storage.get(storage.key_from_url(first_url)) == first_avatar
    assert storage.get(storage.key_from_url(second_url)) == second_avatar


def test_failed_profile_restore_removes_new_avatar(db, storage, account, make_image, monkeypatch):
    ProfileRepository(db).upsert(account.id, {"bio": "Live", "avatar_url": "http://cdn.example.com/live.png"})
    db.commit()

    def broken_upsert(self, account_id, record):
        raise RuntimeError("write failed")

    monkeypatch.setattr(ProfileRepository, "upsert", broken_upsert)

    outcome = MetadataRestoreService(db, storage).restore_metadata(
        account.id, _avatar_archive(make_image("PNG")), ["profile"], "replace"
    )

    assert outcome.results[Component.PROFILE].success is False
    assert ProfileRepository(db).get(account.id).record["avatar_url"] == "http://cdn.example.com/live.png"
    avatar_dir = storage.root / "avatars" / account.id
    assert not avatar_dir.exists() or not any(avatar_dir.iterdir())


def test_profile_add_mode_merges(db, storage, account):
    ProfileRepository(db).upsert(account.id, {"bio": "Old bio", "location": "Lisbon"})
    db.commit()
    archive = _archive(["profile"], {PROFILE_PATH: {"bio": "Painter", "user_id": "someone-else"}})

    outcome = MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["profile"], "add")

    assert outcome.results[Component.PROFILE].success
    assert outcome.results[Component.PROFILE].deleted == 0
    assert ProfileRepository(db).get(account.id).record == {"bio": "Painter", "location": "Lisbon"}


def test_profile_replace_mode_overwrites(db, storage, account):
    ProfileRepository(db).upsert(account.id, {"bio": "Old bio", "location": "Lisbon"})
    db.commit()
    archive = _archive(["profile"], {PROFILE_PATH: {"bio": "Painter"}})

    outcome = MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["profile"], "replace")

    assert outcome.results[Component.PROFILE].deleted == 1
    assert ProfileRepository(db).get(account.id).record == {"bio": "Painter"}


def test_profile_missing_avatar_is_a_warning(db, storage, account):
    archive = _archive(["profile"], {PROFILE_PATH: {"avatar_type": "uploaded", "avatar_url": "x"}})

    outcome = MetadataRestoreService(db, storage).restore_metadata(account.id, archive, ["profile"], "add")

    result = outcome.results[Component.PROFILE]
    assert result.success
    assert result.details["warnings"]


def test_unknown_account_is_fatal(db, storage):
    with pytest.raises(Unauthorized):
        MetadataRestoreService(db, storage).restore_metadata(
            "no-such-account", _artworks_archive(_records(ID_1)), ["artworks"], "add"
        )

"""Tests for branch metadata parsing and ref-addressed storage."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from lattice.core.errors import CasFailed, MetadataError
from lattice.core.metadata.schema import BranchMetadata, FreezeInfo, PrInfo
from lattice.core.metadata.store import MetadataStore
from lattice.core.types import BranchName, Oid
from tests.fakes.git import FakeGit

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
BASE = Oid("1" * 40)


def _metadata() -> BranchMetadata:
    return BranchMetadata.new(
        BranchName("feat"), BranchName("main"), parent_is_trunk=True, base=BASE, now=NOW
    )


def test_serialization_is_canonical_and_parses_back() -> None:
    metadata = _metadata()

    text = metadata.to_json()

    assert text == BranchMetadata.parse(text).to_json()
    assert list(json.loads(text)) == sorted(json.loads(text))


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("kind", "someone-else.metadata"),
        ("schema_version", 2),
        ("unexpected", True),
    ],
)
def test_parse_is_strict(field: str, value: object) -> None:
    data = json.loads(_metadata().to_json())
    data[field] = value

    with pytest.raises(MetadataError):
        BranchMetadata.parse(json.dumps(data))


def test_parse_rejects_non_json() -> None:
    with pytest.raises(MetadataError):
        BranchMetadata.parse("not json")


def test_freeze_scope_must_match_state() -> None:
    with pytest.raises(ValidationError):
        FreezeInfo(state="frozen")
    with pytest.raises(ValidationError):
        FreezeInfo(state="unfrozen", scope="single")
    assert FreezeInfo(state="frozen", scope="single").is_frozen


def test_linked_pr_requires_forge_and_number() -> None:
    with pytest.raises(ValidationError):
        PrInfo(state="linked", forge="github")
    assert PrInfo(state="linked", forge="github", number=7).number == 7


def test_with_base_keeps_created_at_and_bumps_updated_at() -> None:
    later = NOW + timedelta(hours=1)
    new_base = Oid("2" * 40)

    updated = _metadata().with_base(new_base, later)

    assert updated.base.oid == new_base
    assert updated.timestamps.created_at == NOW
    assert updated.timestamps.updated_at == later
    assert updated.structural().parent.name == BranchName("main")


def test_store_writes_and_reads_through_cas(tmp_path: Path) -> None:
    git = FakeGit()
    store = MetadataStore(git, tmp_path)
    branch = BranchName("feat")

    first = store.write_cas(branch, None, _metadata())
    scanned = store.read(branch)

    assert scanned is not None
    assert scanned.ref_oid == first
    assert scanned.metadata == _metadata()
    assert store.list_with_oids() == {branch: first}


def test_store_write_with_stale_expectation_fails(tmp_path: Path) -> None:
    git = FakeGit()
    store = MetadataStore(git, tmp_path)
    branch = BranchName("feat")
    store.write_cas(branch, None, _metadata())

    with pytest.raises(CasFailed):
        store.write_cas(branch, None, _metadata().with_base(Oid("3" * 40), NOW))


def test_store_delete_removes_ref(tmp_path: Path) -> None:
    git = FakeGit()
    store = MetadataStore(git, tmp_path)
    branch = BranchName("feat")
    oid = store.write_cas(branch, None, _metadata())

    store.delete_cas(branch, oid)

    assert store.read(branch) is None

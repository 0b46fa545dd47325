from pathlib import Path

import pytest

from impact_ledger.domain.credit import new_credit_state
from impact_ledger.domain.values import default_settings, update_level
from impact_ledger.errors import PersistenceError, ValidationError
from impact_ledger.integration.repository import JsonRepository
from impact_ledger.models import BatchSummary, Transaction


@pytest.mark.anyio
async def test_missing_documents_load_as_none(tmp_path: Path) -> None:
    repo = JsonRepository(data_dir=str(tmp_path))
    assert await repo.load_value_settings("u1") is None
    assert await repo.load_credit_state("u1") is None
    assert await repo.load_transaction_batch("u1") is None


@pytest.mark.anyio
async def test_round_trip(tmp_path: Path) -> None:
    repo = JsonRepository(data_dir=str(tmp_path))
    settings = update_level(default_settings(), "environment", 5)
    state = new_credit_state("u1").model_copy(update={"credit_transaction_ids": ["a"]})
    batch = BatchSummary(
        transactions=[Transaction(date="2024-01-01", name="Cafe", amount=3.0)],
        total_societal_debt=1.0,
    )

    await repo.save_value_settings("u1", settings)
    await repo.save_credit_state(state)
    await repo.save_transaction_batch("u1", batch)

    assert (tmp_path / "users" / "u1" / "value_settings.json").exists()
    assert await repo.load_value_settings("u1") == settings
    assert await repo.load_credit_state("u1") == state
    assert await repo.load_transaction_batch("u1") == batch


@pytest.mark.anyio
async def test_corrupt_document_raises(tmp_path: Path) -> None:
    user_dir = tmp_path / "users" / "u1"
    user_dir.mkdir(parents=True)
    (user_dir / "credit_state.json").write_text("{broken")

    repo = JsonRepository(data_dir=str(tmp_path))
    with pytest.raises(PersistenceError):
        await repo.load_credit_state("u1")


@pytest.mark.anyio
@pytest.mark.parametrize("user_id", ["../etc", "", "a/b", ".."])
async def test_rejects_unsafe_user_ids(tmp_path: Path, user_id: str) -> None:
    repo = JsonRepository(data_dir=str(tmp_path))
    with pytest.raises(ValidationError):
        await repo.load_value_settings(user_id)


@pytest.mark.anyio
async def test_list_value_settings(tmp_path: Path) -> None:
    repo = JsonRepository(data_dir=str(tmp_path))
    assert await repo.list_value_settings() == {}

    settings = update_level(default_settings(), "environment", 5)
    await repo.save_value_settings("u1", settings)
    await repo.save_value_settings("u2", default_settings())
    await repo.save_credit_state(new_credit_state("u3"))
    broken = tmp_path / "users" / "u4"
    broken.mkdir()
    (broken / "value_settings.json").write_text("{broken")

    assert await repo.list_value_settings() == {"u1": settings, "u2": default_settings()}

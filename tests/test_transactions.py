from impact_ledger.domain.transactions import (
    apply_classification,
    deduplicate_transactions,
    map_bank_transaction,
    map_bank_transactions,
    merge_transactions,
    sort_newest_first,
)
from impact_ledger.models import ClassificationResult, Transaction


def test_id_from_provider_id():
    tx = Transaction(date="2024-05-01", name="Cafe", amount=4.5, provider_transaction_id="abc123")
    assert tx.id == "plaid-abc123"


def test_id_from_date_name_amount():
    tx = Transaction(date="2024-05-01", name=" Corner Cafe ", amount=4.5)
    assert tx.id == "2024-05-01-CORNER CAFE-4.50"


def test_explicit_id_is_kept():
    assert Transaction(id="custom", name="X", provider_transaction_id="abc").id == "custom"


def test_map_bank_transaction():
    tx = map_bank_transaction({
        "transaction_id": "t-1",
        "date": "2024-05-02",
        "name": "SQ *BLUE BOTTLE 1234",
        "merchant_name": "Blue Bottle",
        "amount": -12.25,
        "category": ["Food and Drink", "Coffee"],
    })
    assert tx.id == "plaid-t-1"
    assert tx.name == "Blue Bottle"
    assert tx.merchant_name == "Blue Bottle"
    assert tx.amount == 12.25
    assert tx.provider_categories == ["Food and Drink", "Coffee"]
    assert not tx.analyzed


def test_map_bank_transaction_defaults():
    tx = map_bank_transaction({"date": "2024-05-02", "amount": "bad"})
    assert tx.name == "Unknown Merchant"
    assert tx.amount == 0.0
    assert tx.provider_transaction_id is None


def test_map_bank_transactions_ignores_junk():
    assert map_bank_transactions(None) == []
    assert len(map_bank_transactions([{"name": "A", "date": "2024-01-01"}, "junk", 3])) == 1


def test_map_bank_transactions_collapses_repeated_ids():
    rows = [
        {"transaction_id": "t1", "date": "2024-01-01", "name": "Cafe", "amount": 4.5},
        {"transaction_id": "t1", "date": "2024-01-01", "name": "Cafe (pending)", "amount": 4.5},
        {"transaction_id": "t2", "date": "2024-01-02", "name": "Bakery", "amount": 3.0},
    ]
    mapped = map_bank_transactions(rows)
    assert [tx.id for tx in mapped] == ["plaid-t1", "plaid-t2"]
    assert mapped[0].name == "Cafe"


def test_sort_newest_first_puts_undated_last():
    txs = [
        Transaction(date="2024-01-01", name="old"),
        Transaction(date="", name="undated"),
        Transaction(date="2024-03-01T10:00:00Z", name="new"),
    ]
    assert [tx.name for tx in sort_newest_first(txs)] == ["new", "old", "undated"]


def test_merge_prefers_analyzed():
    saved = Transaction(
        date="2024-05-01", name="Cafe", amount=5.0, analyzed=True, ethical_practices=["Fair Trade"],
    )
    incoming = Transaction(date="2024-05-01", name="Cafe", amount=5.0)
    other = Transaction(date="2024-05-03", name="Bakery", amount=3.0)

    merged = merge_transactions([saved], [incoming, other])

    assert [tx.name for tx in merged] == ["Bakery", "Cafe"]
    assert merged[1].analyzed
    assert merged[1].ethical_practices == ["Fair Trade"]


def test_merge_incoming_wins_otherwise():
    saved = Transaction(date="2024-05-01", name="Cafe", amount=5.0, merchant_name="Old")
    incoming = Transaction(date="2024-05-01", name="Cafe", amount=5.0, merchant_name="New")
    assert merge_transactions([saved], [incoming])[0].merchant_name == "New"


def test_merge_handles_none():
    tx = Transaction(date="2024-05-01", name="Cafe")
    assert merge_transactions(None, [tx]) == [tx]
    assert merge_transactions([tx], None) == [tx]


def test_deduplicate_keeps_first():
    a = Transaction(date="2024-05-01", name="Cafe", amount=1.0, merchant_name="first")
    b = Transaction(date="2024-05-01", name="Cafe", amount=1.0, merchant_name="second")
    assert [tx.merchant_name for tx in deduplicate_transactions([a, b])] == ["first"]


def test_apply_classification_copies_fields():
    tx = Transaction(date="2024-05-01", name="Cafe", amount=10.0)
    result = ClassificationResult(
        matching_transaction_id=tx.id,
        ethical_practices=["Fair Trade"],
        practice_weights={"Fair Trade": 20},
        practice_categories={"Fair Trade": "Labor Ethics"},
        citations={"Fair Trade": ["https://example.org"]},
    )
    classified = apply_classification(tx, result)

    assert classified.analyzed
    assert classified.ethical_practices == ["Fair Trade"]
    assert classified.citations == {"Fair Trade": ["https://example.org"]}
    assert classified.id == tx.id
    assert not tx.analyzed

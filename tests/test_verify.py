import pandas as pd

from scripts.verify import expected_new_stock, find_chain_gaps


def history(*rows) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": f"adj-{n}",
                "adjustment_type": adjustment_type,
                "previous_stock": previous,
                "new_stock": new,
                "quantity": quantity,
                "reason": reason,
            }
            for n, (adjustment_type, previous, new, quantity, reason) in enumerate(rows)
        ]
    )


def test_continuous_history_has_no_gaps():
    df = history(
        ("DAILY_RESET", 2, 10, 10, "Begin of the day"),
        ("ORDER_DEDUCT", 10, 7, 3, "Order o-1"),
        ("ORDER_CANCELLED", 7, 10, 3, "Order o-1 cancelled"),
    )

    assert find_chain_gaps(df).empty
    assert list(df.apply(expected_new_stock, axis=1)) == [10, 7, 10]


def test_chain_restarts_when_tracking_is_enabled():
    # Switched to UNLIMITED after the deduction, then re-enabled with a seed
    df = history(
        ("MANUAL_ADD", 0, 5, 5, "Delivery"),
        ("ORDER_DEDUCT", 5, 3, 2, "Order o-1"),
        ("MANUAL_ADD", 0, 8, 8, "Inventory tracking enabled"),
        ("ORDER_DEDUCT", 8, 6, 2, "Order o-2"),
    )

    assert find_chain_gaps(df).empty


def test_real_gap_is_reported():
    df = history(
        ("MANUAL_ADD", 0, 5, 5, "Delivery"),
        ("ORDER_DEDUCT", 4, 1, 3, "Order o-1"),
    )

    gaps = find_chain_gaps(df)

    assert list(gaps["id"]) == ["adj-1"]

"""Shared fixtures for the aggregator tests."""

import pytest

SENDER = "So11111111111111111111111111111111111111112"
RECEIVER = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
THIRD = "11111111111111111111111111111111"


def make_raw_tx(
    signature="sig1",
    account_keys=None,
    pre_balances=None,
    post_balances=None,
    meta=True,
):
    """Build a json-encoded getBlock transaction entry."""
    raw = {
        "transaction": {
            "signatures": [signature] if signature else [],
            "message": {
                "accountKeys": account_keys if account_keys is not None else [SENDER, RECEIVER, THIRD],
                "instructions": [],
                "recentBlockhash": "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N",
            },
        },
        "version": "legacy",
    }
    if meta:
        raw["meta"] = {
            "err": None,
            "fee": 5000,
            "preBalances": pre_balances if pre_balances is not None else [100, 50, 10],
            "postBalances": post_balances if post_balances is not None else [80, 70, 10],
        }
    return raw


@pytest.fixture
def raw_tx():
    return make_raw_tx()

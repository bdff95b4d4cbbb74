"""Tests for the Transfer Extractor."""

import pytest
from solders.pubkey import Pubkey

from ingestion.errors import (
    ExtractError,
    InvalidPublicKeyError,
    MalformedTransactionError,
    MissingMetadataError,
)
from ingestion.extractor import extract_transfer, get_timestamp

from conftest import RECEIVER, SENDER, make_raw_tx

TS = "2024-07-28 21:11:50"


class TestGetTimestamp:
    """Block time formatting."""

    def test_reference_case_is_utc(self):
        assert get_timestamp(1722201110) == "2024-07-28 21:11:50"

    def test_epoch(self):
        assert get_timestamp(0) == "1970-01-01 00:00:00"

    def test_fixed_width(self):
        assert len(get_timestamp(1722201110)) == 19


class TestExtractTransfer:
    """Raw transaction to Transfer."""

    def test_two_party_delta(self, raw_tx):
        transfer = extract_transfer(raw_tx, TS)

        assert transfer.sender == Pubkey.from_string(SENDER)
        assert transfer.receiver == Pubkey.from_string(RECEIVER)
        assert transfer.amount == 20
        assert transfer.timestamp == TS
        assert transfer.signature == "sig1"

    def test_negative_amount_when_sender_gains(self):
        raw = make_raw_tx(pre_balances=[10, 5], post_balances=[25, 5], account_keys=[SENDER, RECEIVER])
        assert extract_transfer(raw, TS).amount == -15

    @pytest.mark.parametrize("pre,post", [
        (2**63 - 1, 0),
        (0, 2**63 - 1),
        (18_446_744_073_709_551_615, 18_446_744_073_709_551_615),
    ])
    def test_amount_is_exact(self, pre, post):
        raw = make_raw_tx(pre_balances=[pre, 1], post_balances=[post, 1])
        assert extract_transfer(raw, TS).amount == pre - post

    def test_other_accounts_ignored(self):
        raw = make_raw_tx(pre_balances=[100, 0, 999], post_balances=[100, 0, 0])
        assert extract_transfer(raw, TS).amount == 0

    def test_first_signature_used(self):
        raw = make_raw_tx()
        raw["transaction"]["signatures"] = ["first", "second"]
        assert extract_transfer(raw, TS).signature == "first"

    def test_deterministic(self, raw_tx):
        assert extract_transfer(raw_tx, TS) == extract_transfer(raw_tx, TS)

    def test_to_row_uses_base58_keys(self, raw_tx):
        row = extract_transfer(raw_tx, TS).to_row()
        assert row == (SENDER, RECEIVER, 20, TS, "sig1")


class TestExtractErrors:
    """Every failure is a typed ExtractError, never a crash."""

    def test_missing_meta(self):
        with pytest.raises(MissingMetadataError):
            extract_transfer(make_raw_tx(meta=False), TS)

    def test_binary_encoding(self):
        raw = {"transaction": ["AQID", "base64"], "meta": {}}
        with pytest.raises(MissingMetadataError):
            extract_transfer(raw, TS)

    def test_parsed_message(self):
        raw = make_raw_tx(account_keys=[
            {"pubkey": SENDER, "signer": True, "writable": True},
            {"pubkey": RECEIVER, "signer": False, "writable": True},
        ])
        with pytest.raises(MissingMetadataError):
            extract_transfer(raw, TS)

    def test_missing_message(self):
        raw = make_raw_tx()
        del raw["transaction"]["message"]
        with pytest.raises(MissingMetadataError):
            extract_transfer(raw, TS)

    def test_single_account_key(self):
        with pytest.raises(MalformedTransactionError):
            extract_transfer(make_raw_tx(account_keys=[SENDER]), TS)

    def test_no_signature(self):
        with pytest.raises(MalformedTransactionError):
            extract_transfer(make_raw_tx(signature=None), TS)

    def test_empty_balances(self):
        with pytest.raises(MalformedTransactionError):
            extract_transfer(make_raw_tx(pre_balances=[], post_balances=[]), TS)

    @pytest.mark.parametrize("pre,post", [
        ({"0": 100}, [80]),
        ([100], {"0": 80}),
        ("100", [80]),
    ])
    def test_balances_not_lists(self, pre, post):
        with pytest.raises(MalformedTransactionError):
            extract_transfer(make_raw_tx(pre_balances=pre, post_balances=post), TS)

    def test_balances_absent(self):
        raw = make_raw_tx()
        del raw["meta"]["preBalances"]
        with pytest.raises(MalformedTransactionError):
            extract_transfer(raw, TS)

    def test_invalid_key(self):
        raw = make_raw_tx(account_keys=[SENDER, "not-a-key!"])
        with pytest.raises(InvalidPublicKeyError) as exc_info:
            extract_transfer(raw, TS)
        assert exc_info.value.signature == "sig1"

    def test_all_are_extract_errors(self):
        for raw in (make_raw_tx(meta=False), make_raw_tx(account_keys=[SENDER])):
            with pytest.raises(ExtractError):
                extract_transfer(raw, TS)

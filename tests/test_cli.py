# MIT License
# Copyright (c) 2025 Hashborn

import json
import os
import pytest
from stakelend.cli.keystore import KeyStore
from stakelend.cli.main import to_units, format_units
from stakelend.protocol.crypto.keys import private_key_from_seed, public_key_from_private
from stakelend.protocol.crypto.addresses import address_from_pubkey
from stakelend.ledger.cli import node_cli


def test_keystore_create_and_list(tmp_path):
    ks = KeyStore(str(tmp_path))
    key = ks.create_key("alice")

    assert key["address"].startswith("sld1")
    assert oct(os.stat(tmp_path / "alice.json").st_mode & 0o777) == "0o600"
    with pytest.raises(ValueError, match="already exists"):
        ks.create_key("alice")

    listed = ks.list_keys()
    assert listed == [{"name": "alice", "address": key["address"], "public_key": key["public_key"]}]
    assert ks.delete_key("alice")
    assert ks.get_key("alice") is None


def test_keystore_import(tmp_path):
    ks = KeyStore(str(tmp_path))
    priv = private_key_from_seed("bob")
    key = ks.import_key("bob", priv.hex())

    assert key["address"] == address_from_pubkey(public_key_from_private(priv))
    with pytest.raises(ValueError, match="Invalid hex"):
        ks.import_key("x", "zz")
    with pytest.raises(ValueError, match="length"):
        ks.import_key("y", "abcd")


def test_amount_conversion():
    assert to_units("1") == 10**18
    assert to_units("0.5") == 5 * 10**17
    assert format_units(15 * 10**17) == "1.5 sld"
    with pytest.raises(ValueError):
        to_units("abc")
    with pytest.raises(ValueError, match="decimals"):
        to_units("0.0000000000000000001")


def test_node_init_writes_genesis(tmp_path, capsys):
    class Args:
        datadir = str(tmp_path)

    node_cli.cmd_init(Args)
    node_cli.cmd_init(Args)  # idempotent

    key_hex = (tmp_path / "owner_key.hex").read_text().strip()
    owner = address_from_pubkey(public_key_from_private(bytes.fromhex(key_hex)))
    genesis = json.loads((tmp_path / "genesis.json").read_text())

    assert genesis["owner"] == owner
    assert owner in genesis["alloc"]
    assert genesis["credit"][owner] == 1
    assert "Genesis already exists" in capsys.readouterr().out

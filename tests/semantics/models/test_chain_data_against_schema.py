"""Schema conformance tests for the chain dataset models.

Valid dataset documents must be accepted both by the JSON Schema and by
the Pydantic models; documents the schema rejects must be rejected by
Pydantic as well.
"""

# pylint: disable=missing-function-docstring
from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
from jsonschema import ValidationError as JsonSchemaValidationError
from jsonschema import validate as jsonschema_validate
from pydantic import ValidationError as PydanticValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from lending_kpi.core.domain.ray_math import RAY
from lending_kpi.core.domain.types import (
    ReserveState,
    fee_rate_from_configuration,
    usd_price_from_oracle,
)
from lending_kpi.runtime.dataset import ChainDataset

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def load_schema() -> tuple[dict[str, Any], Registry]:
    root = Path(__file__).parent.parent.parent.parent
    schema_path = root / "lending_kpi/core/schemas/chain_data.schema.json"

    with schema_path.open("r", encoding="utf-8") as f:
        schema = json.load(f)

    resource = Resource.from_contents(schema, default_specification=DRAFT202012)
    registry = Registry().with_resource(schema["$id"], resource)
    return schema, registry


@pytest.fixture(scope="module")
def schema() -> tuple[dict[str, Any], Registry]:
    return load_schema()


def assert_schema_ok_and_pydantic_ok(data: dict[str, Any], schema) -> ChainDataset:
    doc, registry = schema
    jsonschema_validate(instance=data, schema=doc, registry=registry)
    return ChainDataset.from_json_obj(data)


def assert_schema_invalid_and_pydantic_rejects(data: dict[str, Any], schema) -> None:
    doc, registry = schema
    with pytest.raises(JsonSchemaValidationError):
        jsonschema_validate(instance=data, schema=doc, registry=registry)

    with pytest.raises(PydanticValidationError):
        ChainDataset.from_json_obj(data)


def mk_reserve(token: str, **overrides: Any) -> dict[str, Any]:
    reserve: dict[str, Any] = {
        "reserve_token_id": token,
        "reserve_token_decimals": 18,
        "yield_token_id": "0xA" + token[3:],
        "liquidity_index": RAY,
        "fee_rate": 1000,
    }
    reserve.update(overrides)
    return reserve


def mk_dataset(**chain_overrides: Any) -> dict[str, Any]:
    chain: dict[str, Any] = {
        "start_reserves": {"0xDAI": mk_reserve("0xDAI")},
        "end_reserves": {"0xDAI": mk_reserve("0xDAI")},
        "fee_rate_history": {"0xDAI": [{"timestamp": 50, "fee_rate": 2000}]},
        "start_balances": {"0xAAI": 10**18},
        "balance_history": {
            "0xAAI": [{"timestamp": 60, "scaled_balance": 2 * 10**18, "liquidity_index": RAY}]
        },
        "usd_prices": {"0xDAI": "1.0001"},
    }
    chain.update(chain_overrides)
    return {
        "user_address": "0xUSER",
        "start_timestamp": 0,
        "end_timestamp_exclusive": 100,
        "chains": {"ethereum-mainnet": chain},
    }


# ---------------------------------------------------------------------------
# Valid documents
# ---------------------------------------------------------------------------


def test_minimal_dataset_ok(schema) -> None:
    dataset = assert_schema_ok_and_pydantic_ok({"chains": {}}, schema)
    assert dataset.chains == {}


def test_full_dataset_ok_and_normalized(schema) -> None:
    dataset = assert_schema_ok_and_pydantic_ok(mk_dataset(), schema)

    chain = dataset.chains["ethereum-mainnet"]
    assert dataset.user_address == "0xuser"
    assert list(chain.end_reserves) == ["0xdai"]
    assert chain.end_reserves["0xdai"].yield_token_id == "0xaai"
    assert chain.start_balances == {"0xaai": 10**18}
    assert chain.usd_prices == {"0xdai": Decimal("1.0001")}
    assert chain.fee_rate_history["0xdai"][0].fee_rate == 2000


def test_reserve_configuration_bitmap_ok(schema) -> None:
    configuration = (2500 << 64) | (1 << 56) | 0xFFFF
    reserve = mk_reserve("0xDAI", configuration=configuration)
    del reserve["fee_rate"]

    dataset = assert_schema_ok_and_pydantic_ok(
        mk_dataset(start_reserves={"0xDAI": reserve}),
        schema,
    )

    assert dataset.chains["ethereum-mainnet"].start_reserves["0xdai"].fee_rate == 2500


def test_oracle_prices_ok(schema) -> None:
    dataset = assert_schema_ok_and_pydantic_ok(
        mk_dataset(usd_prices={"0xDAI": {"price": 100_010_000, "base_currency_unit": 100_000_000}}),
        schema,
    )

    assert dataset.chains["ethereum-mainnet"].usd_prices["0xdai"] == Decimal("1.0001")


# ---------------------------------------------------------------------------
# Invalid documents
# ---------------------------------------------------------------------------


def test_fee_rate_above_100_percent_rejected(schema) -> None:
    assert_schema_invalid_and_pydantic_rejects(
        mk_dataset(end_reserves={"0xDAI": mk_reserve("0xDAI", fee_rate=10_001)}),
        schema,
    )


def test_reserve_without_fee_rate_or_configuration_rejected(schema) -> None:
    reserve = mk_reserve("0xDAI")
    del reserve["fee_rate"]

    assert_schema_invalid_and_pydantic_rejects(
        mk_dataset(end_reserves={"0xDAI": reserve}),
        schema,
    )


def test_unknown_chain_field_rejected(schema) -> None:
    assert_schema_invalid_and_pydantic_rejects(mk_dataset(token_prices={}), schema)


def test_negative_balance_rejected(schema) -> None:
    assert_schema_invalid_and_pydantic_rejects(
        mk_dataset(start_balances={"0xAAI": -1}),
        schema,
    )


def test_negative_price_rejected(schema) -> None:
    assert_schema_invalid_and_pydantic_rejects(
        mk_dataset(usd_prices={"0xDAI": -2}),
        schema,
    )


# ---------------------------------------------------------------------------
# Model-only rules
# ---------------------------------------------------------------------------


def test_reserve_key_must_match_reserve_token() -> None:
    with pytest.raises(PydanticValidationError):
        ChainDataset.from_json_obj(mk_dataset(end_reserves={"0xUSDC": mk_reserve("0xDAI")}))


def test_reserve_key_match_is_case_insensitive() -> None:
    dataset = ChainDataset.from_json_obj(mk_dataset(end_reserves={"0xdai": mk_reserve("0xDAI")}))

    assert "0xdai" in dataset.chains["ethereum-mainnet"].end_reserves


def test_models_are_immutable() -> None:
    reserve = ReserveState.model_validate(mk_reserve("0xDAI"))

    with pytest.raises(PydanticValidationError):
        reserve.fee_rate = 0


def test_fee_rate_from_configuration() -> None:
    assert fee_rate_from_configuration(0) == 0
    assert fee_rate_from_configuration(1000 << 64) == 1000
    # Neighbouring fields are ignored.
    assert fee_rate_from_configuration((1 << 80) | (1234 << 64) | (1 << 63)) == 1234


def test_usd_price_from_oracle() -> None:
    assert usd_price_from_oracle(250_000_000_000, 100_000_000) == Decimal(2500)
    assert usd_price_from_oracle(250_000_000_000, 0) == Decimal(0)

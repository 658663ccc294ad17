"""
Tests for the polyson host codec.

Tests cover:
1. Default behavior: pydantic encoding and decoding, Polymorphic fields
   without hooks
2. Encode and decode hooks, SKIP and re-entry into pydantic
3. Hooks reached through direct pydantic calls
4. Error mapping and propagation
5. Output settings and CodecOptions merging
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated, Any

import pytest
from pydantic import BaseModel, Field

from polyson import (
    SKIP,
    CodecOptions,
    DecodeError,
    EncodeError,
    MalformedWrapper,
    Marshaler,
    Polymorphic,
    Unmarshaler,
    UnknownVariantType,
    adapter_for,
    marshal,
    unmarshal,
)


# =============================================================================
# Module-Level Test Classes
# =============================================================================


class Measure(ABC):
    @abstractmethod
    def kelvin(self) -> float: ...


class Celsius(BaseModel, Measure):
    degrees: float = 0

    def kelvin(self) -> float:
        return self.degrees + 273.15


class Fahrenheit(BaseModel, Measure):
    degrees: float = 0

    def kelvin(self) -> float:
        return (self.degrees - 32) * 5 / 9 + 273.15


class Reading(BaseModel):
    sensor: str = ""
    value: Polymorphic[Measure] | None = None


class Log(BaseModel):
    readings: list[Polymorphic[Measure]] = []
    latest: dict[str, Polymorphic[Measure]] = {}


class Account(BaseModel):
    user_id: int = Field(alias="userId")
    name: str
    note: str | None = None


class Point(BaseModel):
    x: int = 0


class Holder(BaseModel):
    item: Polymorphic[Point]


class Bag(BaseModel):
    item: Any = None


def encode_celsius(value, ctx):
    return f"{value.degrees:g}C"


def decode_celsius(data, target, ctx):
    if isinstance(data, str) and data.endswith("C"):
        return Celsius(degrees=float(data[:-1]))
    return SKIP


CELSIUS = CodecOptions(
    marshalers=(Marshaler(Celsius, encode_celsius),),
    unmarshalers=(Unmarshaler(Measure, decode_celsius),),
)


# =============================================================================
# Default Behavior
# =============================================================================


class TestDefaults:
    """Tests for encoding and decoding without hooks."""

    def test_model(self):
        assert marshal(Account(userId=1, name="a")) == b'{"userId":1,"name":"a","note":null}'
        assert unmarshal(b'{"userId":1,"name":"a"}', Account) == Account(userId=1, name="a")

    def test_exclude_none(self):
        options = CodecOptions(exclude_none=True)
        assert marshal(Account(userId=1, name="a"), options) == b'{"userId":1,"name":"a"}'

    def test_field_names(self):
        options = CodecOptions(by_alias=False)
        assert marshal(Account(userId=1, name="a"), options).startswith(b'{"user_id":1')

    def test_polymorphic_encodes_own_type(self):
        reading = Reading(value=Celsius(degrees=21.5))
        assert marshal(reading) == b'{"sensor":"","value":{"degrees":21.5}}'

    def test_polymorphic_abstract_cannot_decode(self):
        message = "cannot derive concrete type for abstract type Measure"
        with pytest.raises(DecodeError, match=message) as exc_info:
            unmarshal(b'{"value":{"degrees":1}}', Reading)
        assert exc_info.value.loc == ["value"]

    def test_error_location_in_list(self):
        with pytest.raises(DecodeError) as exc_info:
            unmarshal(b'{"readings":[{"degrees":1}]}', Log)
        assert exc_info.value.loc == ["readings", 0]

    def test_abstract_target(self):
        with pytest.raises(DecodeError, match="cannot derive concrete type for abstract type Measure"):
            unmarshal(b"{}", Measure)

    def test_concrete_interface_uses_own_schema(self):
        assert unmarshal(b'{"item":{"x":3}}', Holder) == Holder(item=Point(x=3))

    def test_instances_pass_construction(self):
        celsius = Celsius(degrees=1)
        assert Reading(value=celsius).value is celsius

    def test_invalid_json(self):
        with pytest.raises(DecodeError, match="Invalid JSON"):
            unmarshal(b'{"sensor":', Reading)

    def test_validation_error(self):
        with pytest.raises(DecodeError) as exc_info:
            unmarshal(b'{"userId":"x","name":"a"}', Account)
        assert exc_info.value.loc == ["userId"]
        assert "(at userId)" in str(exc_info.value)

    def test_unencodable(self):
        with pytest.raises(EncodeError):
            marshal(Bag(item=object()))


# =============================================================================
# Hooks
# =============================================================================


class TestHooks:
    """Tests for Marshaler/Unmarshaler dispatch on Polymorphic fields."""

    def test_marshaler(self):
        reading = Reading(value=Celsius(degrees=21.5))
        assert marshal(reading, CELSIUS) == b'{"sensor":"","value":"21.5C"}'

    def test_unmarshaler(self):
        reading = unmarshal(b'{"value":"21.5C"}', Reading, CELSIUS)
        assert reading == Reading(value=Celsius(degrees=21.5))

    def test_unmatched_value_uses_default(self):
        reading = Reading(value=Fahrenheit(degrees=50.5))
        assert marshal(reading, CELSIUS) == b'{"sensor":"","value":{"degrees":50.5}}'

    def test_skip_defers_to_default(self):
        with pytest.raises(DecodeError, match="cannot derive concrete type"):
            unmarshal(b'{"value":{"degrees":1}}', Reading, CELSIUS)

    def test_skip_defers_to_next_hook(self):
        options = CodecOptions(
            marshalers=(
                Marshaler(Measure, lambda v, ctx: SKIP),
                Marshaler(Measure, lambda v, ctx: "second"),
            )
        )
        assert marshal(Reading(value=Celsius()), options) == b'{"sensor":"","value":"second"}'

    def test_hooks_reach_containers(self):
        log = Log(readings=[Celsius(degrees=1), Celsius(degrees=2)], latest={"a": Celsius(degrees=3)})
        data = marshal(log, CELSIUS)

        assert data == b'{"readings":["1C","2C"],"latest":{"a":"3C"}}'
        assert unmarshal(data, Log, CELSIUS) == log

    def test_hook_reenters_pydantic(self):
        options = CodecOptions(
            marshalers=(Marshaler(Celsius, lambda v, ctx: {"unit": "C", "value": ctx.marshal(v)}),),
            unmarshalers=(
                Unmarshaler(Measure, lambda data, target, ctx: ctx.unmarshal(data["value"], Celsius)),
            ),
        )
        reading = Reading(value=Celsius(degrees=1.5))
        data = marshal(reading, options)

        assert data == b'{"sensor":"","value":{"unit":"C","value":{"degrees":1.5}}}'
        assert unmarshal(data, Reading, options) == reading

    def test_top_level_target(self):
        assert marshal(Celsius(degrees=4), CELSIUS, target=Polymorphic[Measure]) == b'"4C"'
        assert unmarshal(b'"4C"', Polymorphic[Measure], CELSIUS) == Celsius(degrees=4)

    def test_unmarshaler_matches_subclasses(self):
        assert Unmarshaler(Measure, decode_celsius).matches(Celsius)
        assert Unmarshaler(Measure, decode_celsius).matches(Measure)
        assert not Unmarshaler(Celsius, decode_celsius).matches(Measure)

    def test_json_mode(self):
        modes = []

        def record(value, ctx):
            modes.append(ctx.json_mode)
            return "x"

        options = CodecOptions(marshalers=(Marshaler(Measure, record),))
        reading = Reading(value=Celsius())
        marshal(reading, options)
        reading.model_dump(context=options.context())

        assert modes == [True, False]


# =============================================================================
# Direct Pydantic Calls
# =============================================================================


class TestPydanticContext:
    """Tests for hooks reached through model_dump / model_validate."""

    def test_dump_json(self):
        reading = Reading(value=Celsius(degrees=21.5))
        data = reading.model_dump_json(context=CELSIUS.context())

        assert data == '{"sensor":"","value":"21.5C"}'
        assert Reading.model_validate_json(data, context=CELSIUS.context()) == reading

    def test_dump_python(self):
        reading = Reading(value=Celsius(degrees=21.5))
        assert reading.model_dump(context=CELSIUS.context()) == {"sensor": "", "value": "21.5C"}

    def test_validate_python(self):
        reading = Reading.model_validate({"value": "2C"}, context=CELSIUS.context())
        assert reading == Reading(value=Celsius(degrees=2))

    def test_without_context(self):
        reading = Reading(value=Celsius(degrees=21.5))
        assert reading.model_dump_json() == '{"sensor":"","value":{"degrees":21.5}}'


# =============================================================================
# Hook Errors
# =============================================================================


def refuse(value, ctx):
    raise UnknownVariantType(type(value))


def reject(data, target, ctx):
    raise MalformedWrapper("rejected")


class TestHookErrors:
    """Tests for errors raised by hooks."""

    def test_encode_error_propagates(self):
        options = CodecOptions(marshalers=(Marshaler(Measure, refuse),))
        with pytest.raises(UnknownVariantType) as exc_info:
            marshal(Log(readings=[Celsius()]), options)
        assert exc_info.value.value_type is Celsius

    def test_decode_error_propagates(self):
        options = CodecOptions(unmarshalers=(Unmarshaler(Measure, reject),))
        with pytest.raises(MalformedWrapper, match="rejected"):
            unmarshal(b'{"readings":[{}]}', Log, options)


# =============================================================================
# Output and Options
# =============================================================================


class TestOptions:
    """Tests for output settings and CodecOptions."""

    def test_deterministic(self):
        data = {"b": 1, "a": {"d": 2, "c": [{"f": 1, "e": 2}]}}
        options = CodecOptions(deterministic=True)

        assert marshal(data, options) == b'{"a":{"c":[{"e":2,"f":1}],"d":2},"b":1}'

    def test_indent(self):
        assert marshal([1], CodecOptions(indent=2)) == b"[\n  1\n]"

    def test_adapter_is_cached(self):
        assert adapter_for(Account) is adapter_for(Account)

    def test_polymorphic_is_annotated(self):
        assert Polymorphic[Measure] == Annotated[Measure, Polymorphic(Measure)]

    def test_with_hooks(self):
        marshaler = Marshaler(Celsius, encode_celsius)
        unmarshaler = Unmarshaler(Measure, decode_celsius)

        options = CodecOptions(deterministic=True).with_hooks(marshaler, unmarshaler)

        assert options.deterministic is True
        assert options.marshalers == (marshaler,)
        assert options.unmarshalers == (unmarshaler,)

    def test_with_hooks_rejects_other_objects(self):
        with pytest.raises(TypeError, match="expected Marshaler or Unmarshaler"):
            CodecOptions().with_hooks(encode_celsius)

    def test_join(self):
        first = CodecOptions(deterministic=True, indent=2).with_hooks(Marshaler(Celsius, encode_celsius))
        second = CodecOptions(exclude_none=True, indent=4).with_hooks(
            Marshaler(Fahrenheit, lambda v, ctx: SKIP)
        )

        joined = first.join(second)

        assert joined.deterministic is True
        assert joined.exclude_none is True
        assert joined.indent == 4
        assert [m.python_type for m in joined.marshalers] == [Celsius, Fahrenheit]

    def test_join_keeps_indent(self):
        assert CodecOptions(indent=2).join(CodecOptions()).indent == 2

    def test_hook_lists_become_tuples(self):
        options = CodecOptions(marshalers=[Marshaler(Celsius, encode_celsius)])
        assert isinstance(options.marshalers, tuple)

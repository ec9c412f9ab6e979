"""Typed decoding of action payloads.

Action data is an opaque JSON string whose layout depends on the action
name. Known action names decode into msgspec structs; everything else is
returned as :class:`OpaquePayload` so callers can pattern-match on the
result instead of poking at untyped lists.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec

from spyglass.explorer.errors import ActionPayloadError

if typ.TYPE_CHECKING:
    from spyglass.chain.models import RawAction

TRANSFER_ACTION = "Transfer"


class TransferPayload(msgspec.Struct, frozen=True, array_like=True):
    """``Transfer`` data: ``[from, to, amount]``."""

    sender: str
    recipient: str
    amount: float


@dataclasses.dataclass(frozen=True, slots=True)
class OpaquePayload:
    """Payload of an action name with no registered layout."""

    action_name: str
    data: str


type ActionPayload = TransferPayload | OpaquePayload

_decoders: dict[str, msgspec.json.Decoder[typ.Any]] = {}


def register_payload(action_name: str, model: type[msgspec.Struct]) -> None:
    """Register the struct used to decode ``action_name`` payloads."""
    _decoders[action_name] = msgspec.json.Decoder(model)


def decode_action_payload(action: RawAction) -> ActionPayload:
    """Decode ``action.data`` according to ``action.action_name``.

    Raises
    ------
    ActionPayloadError
        If the action name is registered but its data does not decode.

    """
    decoder = _decoders.get(action.action_name)
    if decoder is None:
        return OpaquePayload(action_name=action.action_name, data=action.data)

    try:
        return decoder.decode(action.data)
    except msgspec.ValidationError as exc:
        raise ActionPayloadError.wrong_shape(action.action_name, str(exc)) from exc
    except msgspec.DecodeError as exc:
        raise ActionPayloadError.invalid_json(action.action_name, str(exc)) from exc


register_payload(TRANSFER_ACTION, TransferPayload)

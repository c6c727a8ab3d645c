# mailchimp_app/batch.py
"""
Mailchimp batch operations.

A Batch collects sub-operations (verb + path + payload) and submits them as a
single POST /batches. Mailchimp processes them asynchronously in submission
order; the returned batch id is kept so check_status() can poll it later.

    batch = client.new_batch()
    batch.post("op1", "lists/abc/members", {"email_address": "a@b.com", "status": "subscribed"})
    batch.get("op2", "lists/abc", {"fields": "stats"})
    batch.execute()
    batch.check_status()

See https://mailchimp.com/developer/marketing/api/batch-operations/
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from .errors import InvalidArgument

log = logging.getLogger(__name__)


class Verb(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def coerce(cls, value) -> "Verb":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidArgument(f"Unsupported HTTP verb: {value!r}") from None


class BatchState(str, enum.Enum):
    ASSEMBLING = "assembling"
    SUBMITTED = "submitted"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


class APIClient(Protocol):
    def post(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: int = 10): ...
    def get(self, path: str, args: Optional[Dict[str, Any]] = None, timeout: int = 10): ...


@dataclass(frozen=True)
class Operation:
    operation_id: str
    method: Verb
    path: str
    params: Optional[Mapping[str, Any]] = None  # GET only, read-only
    body: Optional[str] = None               # JSON string, non-GET only

    @classmethod
    def build(cls, verb, operation_id: str, path: str,
              payload: Optional[Dict[str, Any]] = None) -> "Operation":
        verb = Verb.coerce(verb)
        if verb is Verb.DELETE or not payload:
            return cls(operation_id, verb, path)
        if verb is Verb.GET:
            return cls(operation_id, verb, path, params=_freeze(payload))
        return cls(operation_id, verb, path, body=json.dumps(payload, separators=(",", ":")))

    def to_dict(self) -> Dict[str, Any]:
        op: Dict[str, Any] = {
            "operation_id": self.operation_id,
            "method": self.method.value,
            "path": self.path,
        }
        if self.params is not None:
            op["params"] = _thaw(self.params)
        if self.body is not None:
            op["body"] = self.body
        return op


class Batch:
    def __init__(self, client: APIClient, batch_id: Optional[str] = None):
        self.client = client
        self.batch_id = batch_id
        self._operations: List[Operation] = []
        # A known id means the batch already lives on Mailchimp's side.
        self.state = BatchState.SUBMITTED if batch_id else BatchState.ASSEMBLING

    # ── queuing ───────────────────────────────────────────────────────────────
    def queue(self, verb, operation_id: str, path: str,
              payload: Optional[Dict[str, Any]] = None) -> Operation:
        if self.state is BatchState.SUBMITTED:
            raise InvalidArgument(
                f"Batch {self.batch_id} was already submitted; call reopen() before queuing more operations."
            )
        op = Operation.build(verb, operation_id, path, payload)
        self._operations.append(op)
        return op

    def delete(self, operation_id: str, path: str) -> Operation:
        return self.queue(Verb.DELETE, operation_id, path)

    def get(self, operation_id: str, path: str, args: Optional[Dict[str, Any]] = None) -> Operation:
        return self.queue(Verb.GET, operation_id, path, args)

    def patch(self, operation_id: str, path: str, args: Optional[Dict[str, Any]] = None) -> Operation:
        return self.queue(Verb.PATCH, operation_id, path, args)

    def post(self, operation_id: str, path: str, args: Optional[Dict[str, Any]] = None) -> Operation:
        return self.queue(Verb.POST, operation_id, path, args)

    def put(self, operation_id: str, path: str, args: Optional[Dict[str, Any]] = None) -> Operation:
        return self.queue(Verb.PUT, operation_id, path, args)

    def reopen(self) -> None:
        """Allow queuing again; existing operations and batch id are kept."""
        self.state = BatchState.ASSEMBLING

    # ── inspection ────────────────────────────────────────────────────────────
    def list_operations(self) -> Tuple[Operation, ...]:
        return tuple(self._operations)

    def payload(self) -> Dict[str, Any]:
        return {"operations": [op.to_dict() for op in self._operations]}

    # ── remote calls ──────────────────────────────────────────────────────────
    def execute(self, timeout: int = 10):
        """
        POST the queued operations to /batches.
        Returns the decoded response (or None); operations are not cleared.
        """
        log.info("Submitting batch with %d operation(s)", len(self._operations))
        result = self.client.post("batches", self.payload(), timeout)

        if isinstance(result, dict) and result.get("id"):
            self.batch_id = result["id"]
            self.state = BatchState.SUBMITTED
            log.info("Batch accepted: id=%s status=%s", self.batch_id, result.get("status"))
        return result

    def check_status(self, batch_id: Optional[str] = None):
        """Poll GET /batches/{id}. Explicit id wins over the stored one."""
        batch_id = batch_id or self.batch_id
        if not batch_id:
            raise InvalidArgument("No batch id given and none stored; execute() the batch first.")
        return self.client.get(f"batches/{batch_id}")

"""Shared fixtures: an in-memory Airtable base served through responses."""
import json
import re
from collections import defaultdict
from urllib.parse import parse_qs, unquote, urlparse

import pytest
import responses

from storage.airtable_client import AirtableClient
from storage.catalog_store import CatalogStore

BASE_ID = "appTEST"
AIRTABLE_RE = re.compile(rf"https://api\.airtable\.com/v0/{BASE_ID}/.*")


def _split_args(text):
    args, depth, quoted, current, i = [], 0, False, "", 0
    while i < len(text):
        char = text[i]
        if quoted and char == "\\":
            current += text[i:i + 2]
            i += 2
            continue
        if char == "'":
            quoted = not quoted
        elif not quoted and char == "(":
            depth += 1
        elif not quoted and char == ")":
            depth -= 1
        elif not quoted and depth == 0 and char == ",":
            args.append(current.strip())
            current = ""
            i += 1
            continue
        current += char
        i += 1
    if current.strip():
        args.append(current.strip())
    return args


def evaluate_formula(formula, fields):
    """Evaluate the subset of Airtable formulas the store generates."""
    formula = formula.strip()
    for operator in ("AND", "OR"):
        if formula.startswith(f"{operator}(") and formula.endswith(")"):
            results = [evaluate_formula(arg, fields)
                       for arg in _split_args(formula[len(operator) + 1:-1])]
            return all(results) if operator == "AND" else any(results)

    match = re.match(r"^\{([^}]+)\}=(.*)$", formula)
    if not match:
        raise AssertionError(f"Unsupported formula: {formula}")
    name, rhs = match.groups()
    value = fields.get(name)
    if rhs == "BLANK()":
        return value in (None, "", [])
    literal = re.sub(r"\\(.)", r"\1", rhs[1:-1])
    return value == literal


class FakeAirtable:
    """Minimal Airtable base: list/create/update/delete with paging."""

    def __init__(self, rsps, page_size=100):
        self.rsps = rsps
        self.page_size = page_size
        self.tables = defaultdict(list)
        self.calls = []
        self.fail_calls = {}
        self._counts = defaultdict(int)
        self._next_id = 1
        rsps.add_callback(responses.GET, AIRTABLE_RE, callback=self._handle)
        rsps.add_callback(responses.POST, AIRTABLE_RE, callback=self._handle)
        rsps.add_callback(responses.PATCH, AIRTABLE_RE, callback=self._handle)
        rsps.add_callback(responses.DELETE, AIRTABLE_RE, callback=self._handle)

    def seed(self, table, fields, record_id=None):
        record = {"id": record_id or self._new_id(), "fields": dict(fields)}
        self.tables[table].append(record)
        return record["id"]

    def records(self, table):
        return self.tables[table]

    def calls_for(self, method, table):
        return [call for call in self.calls if call[0] == method and call[1] == table]

    def _new_id(self):
        record_id = f"rec{self._next_id:05d}"
        self._next_id += 1
        return record_id

    def _handle(self, request):
        parsed = urlparse(request.url)
        parts = [unquote(part) for part in parsed.path.split("/")[3:]]
        table = parts[0]
        record_id = parts[1] if len(parts) > 1 else None
        params = parse_qs(parsed.query)
        payload = json.loads(request.body) if request.body else None

        self.calls.append((request.method, table, payload))
        self._counts[(request.method, table)] += 1
        if self._counts[(request.method, table)] in self.fail_calls.get((request.method, table), ()):
            return 500, {}, json.dumps({"error": {"type": "SERVER_ERROR", "message": "injected failure"}})

        handler = getattr(self, f"_{request.method.lower()}")
        status, body = handler(table, record_id, params, payload)
        return status, {}, json.dumps(body)

    def _get(self, table, record_id, params, payload):
        records = self.tables[table]
        formula = params.get("filterByFormula", [None])[0]
        if formula:
            records = [r for r in records if evaluate_formula(formula, r["fields"])]
        start = int(params.get("offset", ["0"])[0])
        page = records[start:start + self.page_size]
        body = {"records": page}
        if start + self.page_size < len(records):
            body["offset"] = str(start + self.page_size)
        return 200, body

    def _post(self, table, record_id, params, payload):
        if len(payload["records"]) > 10:
            return 422, {"error": {"type": "INVALID_RECORDS", "message": "too many"}}
        created = []
        for item in payload["records"]:
            record = {"id": self._new_id(), "fields": dict(item["fields"])}
            self.tables[table].append(record)
            created.append(record)
        return 200, {"records": created}

    def _patch(self, table, record_id, params, payload):
        if record_id:
            return 200, self._apply(table, record_id, payload["fields"])
        if len(payload["records"]) > 10:
            return 422, {"error": {"type": "INVALID_RECORDS", "message": "too many"}}
        return 200, {"records": [
            self._apply(table, item["id"], item["fields"]) for item in payload["records"]
        ]}

    def _delete(self, table, record_id, params, payload):
        ids = [record_id] if record_id else params.get("records[]", [])
        self.tables[table] = [r for r in self.tables[table] if r["id"] not in ids]
        if record_id:
            return 200, {"id": record_id, "deleted": True}
        return 200, {"records": [{"id": i, "deleted": True} for i in ids]}

    def _apply(self, table, record_id, fields):
        for record in self.tables[table]:
            if record["id"] == record_id:
                record["fields"].update(fields)
                return record
        raise AssertionError(f"No record {record_id} in {table}")


@pytest.fixture
def airtable():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield FakeAirtable(rsps)


@pytest.fixture
def store(airtable):
    client = AirtableClient(api_key="key123", base_id=BASE_ID, timeout=5)
    return CatalogStore(client)

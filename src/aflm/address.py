"""
Address Enrichment Service.

Resolves region (state) and city from country + postal code through the
remote pincode lookup, for every address group of the form:

    comm_address             communication address
    billing                  billing address
    current_school           current school (only while not home schooled)
    students_parents[i]      each parent with their own address
    student_guardians[i]     each guardian with their own address

Timing model:
    - A change of (country, postal code) starts a quiet interval
      (debounce_seconds). Only the last change inside the interval issues
      a request.
    - The blocking HTTP call runs in a worker thread (asyncio.to_thread).
    - When a response arrives, its tag, the (country, postal code) pair, is compared with
      the group's CURRENT inputs. A mismatch means the response is stale
      and it is dropped without touching the snapshot. In-flight requests
      are never cancelled.

Failures never escape the service: region and city are cleared and the
group's error text is set.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import requests

from aflm.config import EngineSettings
from aflm.countries import resolve_iso2
from aflm.errors import AddressLookupError
from aflm.expressions import Expression, UnaryExpression, UnaryOperator, equals
from aflm.model import AddressQuery, AddressResult, FormDefinition
from aflm.paths import element_path, get_value, is_blank, parse_path, set_value
from aflm.rules import evaluate_expression

logger = logging.getLogger(__name__)

INVALID_STRUCTURE = "Invalid data structure received from address API."
TOO_SHORT = "PIN / ZIP Code is too short (minimum {n} characters)."
SELECT_COUNTRY = "Please select a country."
INVALID_COUNTRY = "Invalid country ('{country}') or ISO code not found."


# ---------------------------------------------------------------------------
# Remote lookup
# ---------------------------------------------------------------------------

class AddressLookupClient:
    """
    Blocking client for GET {base}/countries/{ISO2}/pincodes/{postal}.

    Every failure (timeout, network, non-2xx, non-JSON body) is raised as
    AddressLookupError with a human-readable message.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def url(self, iso2: str, postal_code: str) -> str:
        base = self.settings.lookup_base_url.rstrip("/")
        return f"{base}/countries/{iso2}/pincodes/{postal_code}"

    def fetch(self, iso2: str, postal_code: str) -> Dict[str, Any]:
        url = self.url(iso2, postal_code)
        timeout = self.settings.lookup_timeout_seconds
        try:
            response = requests.get(url, timeout=timeout)
        except requests.Timeout as e:
            raise AddressLookupError(f"Address lookup timed out after {timeout:g}s.") from e
        except requests.RequestException as e:
            raise AddressLookupError(f"Failed to fetch address details: {e}") from e

        if not 200 <= response.status_code < 300:
            raise AddressLookupError(_error_message(response, postal_code, iso2))
        try:
            return response.json()
        except ValueError as e:
            raise AddressLookupError(INVALID_STRUCTURE) from e


def _error_message(response, postal_code: str, iso2: str) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and (body.get("message") or body.get("error")):
        return str(body.get("message") or body.get("error"))
    reason = getattr(response, "reason", "") or ""
    return f"Pincode {postal_code} not found for {iso2} or API error: {response.status_code} {reason}".rstrip()


def resolve_address(data: Any) -> AddressResult:
    """
    Turn a lookup response body into an AddressResult.

    The service returns exactly one state. The chosen city is `defaultcity`
    when it is one of `acceptedCities`, else the first accepted city.
    """
    if not isinstance(data, dict):
        raise AddressLookupError(INVALID_STRUCTURE)
    state = data.get("state")
    cities = data.get("acceptedCities")
    if not state or not isinstance(state, str) or not isinstance(cities, list):
        raise AddressLookupError(INVALID_STRUCTURE)

    cities = tuple(str(c) for c in cities)
    default_city = data.get("defaultcity")
    if default_city and default_city in cities:
        chosen_city = default_city
    else:
        chosen_city = cities[0] if cities else ""
    return AddressResult(
        region_options=(state,),
        city_options=cities,
        chosen_region=state,
        chosen_city=chosen_city,
    )


# ---------------------------------------------------------------------------
# Address groups
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AddressBinding:
    """
    Where one address group keeps its inputs and its enriched outputs.

    guard:
        Lookups only run while this condition holds (evaluated with the
        element as scope for element bindings). None means always.
    """

    key: str
    country_path: str
    postal_path: str
    region_path: str
    city_path: str
    guard: Optional[Expression] = None

    def inputs(self, snapshot: Mapping[str, Any]) -> Tuple[str, str]:
        country = get_value(snapshot, self.country_path) or ""
        postal = get_value(snapshot, self.postal_path) or ""
        return str(country).strip(), str(postal).strip()

    def is_active(self, snapshot: Mapping[str, Any]) -> bool:
        if self.guard is None:
            return True
        fp = parse_path(self.country_path)
        element = None
        if fp.is_element:
            elements = snapshot.get(fp.group) or []
            if fp.index >= len(elements):
                return False
            element = elements[fp.index]
        return bool(evaluate_expression(self.guard, snapshot, element))


FIXED_BINDINGS = (
    AddressBinding("comm_address", "comm_address_country", "comm_address_area_code",
                   "comm_address_state", "comm_address_city"),
    AddressBinding("billing", "billing_country", "billing_area_code",
                   "billing_state", "billing_city"),
    AddressBinding("current_school", "current_school_country", "current_school_area_code",
                   "current_school_state", "current_school_city",
                   guard=equals("is_home_schooled", "No")),
)

# Communication address -> person address suffix, for "same as applicant".
APPLICANT_ADDRESS_COPY = (
    ("comm_address_country", "address_country"),
    ("comm_address_area_code", "address_zipcode"),
    ("comm_address_state", "address_state"),
    ("comm_address_city", "address_city"),
    ("comm_address_line_1", "address_line1"),
    ("comm_address_line_2", "address_line2"),
)


def address_bindings(form: FormDefinition, snapshot: Mapping[str, Any]) -> List[AddressBinding]:
    """All address groups present in the snapshot, fixed ones first."""
    bindings = list(FIXED_BINDINGS)
    for group in form.groups:
        if not group.address_prefix:
            continue
        p = group.address_prefix
        own_address = UnaryExpression(UnaryOperator.NOT, equals(f"{p}is_address_same_as_applicant", "Yes"))
        for index, _ in enumerate(snapshot.get(group.name) or []):
            bindings.append(AddressBinding(
                key=f"{group.name}[{index}]",
                country_path=element_path(group.name, index, f"{p}address_country"),
                postal_path=element_path(group.name, index, f"{p}address_zipcode"),
                region_path=element_path(group.name, index, f"{p}address_state"),
                city_path=element_path(group.name, index, f"{p}address_city"),
                guard=own_address,
            ))
    return bindings


def copy_applicant_address(form: FormDefinition, snapshot: Dict[str, Any],
                           previous: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Keep "same as applicant" person addresses in sync with the
    communication address, without any lookup.

    Elements answering Yes receive the communication address verbatim.
    An element switching from Yes to No gets its state and city cleared.
    Returns the input snapshot object when nothing changes.
    """
    previous = previous or {}
    for group in form.groups:
        p = group.address_prefix
        if not p:
            continue
        flag = f"{p}is_address_same_as_applicant"
        old_elements = previous.get(group.name) or []
        for index, element in enumerate(snapshot.get(group.name) or []):
            updates: Dict[str, Any] = {}
            if element.get(flag) == "Yes":
                for source, suffix in APPLICANT_ADDRESS_COPY:
                    value = snapshot.get(source) or ""
                    if element.get(p + suffix) != value:
                        updates[p + suffix] = value
            elif element.get(flag) == "No":
                was = old_elements[index].get(flag) if index < len(old_elements) else None
                if was == "Yes":
                    updates = {f"{p}{suffix}": "" for suffix in ("address_state", "address_city")
                               if element.get(f"{p}{suffix}")}
            for suffix, value in updates.items():
                snapshot = set_value(snapshot, element_path(group.name, index, suffix), value)
    return snapshot


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@dataclass
class AddressGroupState:
    """Per-group lookup state shown to the UI."""

    loading: bool = False
    error: Optional[str] = None
    result: Optional[AddressResult] = None
    pending_tag: Optional[Tuple[str, str]] = None


class AddressEnrichmentService:
    """
    Debounced, staleness-safe address lookups for one editing session.

    The service never owns the snapshot. It reads it through
    `read_snapshot` and hands region/city updates to `write_fields`
    ({path: value}), which the session applies as a normal edit.
    """

    def __init__(
        self,
        form: FormDefinition,
        read_snapshot: Callable[[], Dict[str, Any]],
        write_fields: Callable[[Dict[str, Any]], None],
        settings: Optional[EngineSettings] = None,
        client: Optional[AddressLookupClient] = None,
    ):
        self.form = form
        self.settings = settings or EngineSettings()
        self.client = client or AddressLookupClient(self.settings)
        self._read = read_snapshot
        self._write = write_fields
        self._states: Dict[str, AddressGroupState] = {}
        self._generation: Dict[str, int] = {}
        self._tasks: set = set()

    def state(self, key: str) -> AddressGroupState:
        return self._states.setdefault(key, AddressGroupState())

    def states(self) -> Dict[str, AddressGroupState]:
        return dict(self._states)

    # -- change detection ---------------------------------------------------

    def on_change(self, previous: Optional[Mapping[str, Any]], snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """
        React to a committed edit.

        Schedules lookups for address groups whose inputs changed and
        returns synchronous updates ({path: value}) for groups whose
        inputs cannot be looked up (region/city cleared).
        """
        updates: Dict[str, Any] = {}
        bindings = address_bindings(self.form, snapshot)
        self._forget_vanished({b.key for b in bindings})
        for binding in bindings:
            now = (binding.is_active(snapshot), binding.inputs(snapshot))
            before = None
            if previous is not None and self._binding_exists(binding, previous):
                before = (binding.is_active(previous), binding.inputs(previous))
            if now == before:
                continue
            updates.update(self._inputs_changed(binding, snapshot))
        return updates

    def _forget_vanished(self, keys) -> None:
        """Drop the state of group elements that no longer exist."""
        for key in [k for k in self._states if k not in keys]:
            logger.debug("Address group %s removed; forgetting its lookup state", key)
            del self._states[key]
            # a pending lookup for the removed element must not report back
            self._generation[key] = self._generation.get(key, 0) + 1

    @staticmethod
    def _binding_exists(binding: AddressBinding, snapshot: Mapping[str, Any]) -> bool:
        fp = parse_path(binding.country_path)
        if not fp.is_element:
            return True
        return fp.index < len(snapshot.get(fp.group) or [])

    def _inputs_changed(self, binding: AddressBinding, snapshot: Mapping[str, Any]) -> Dict[str, Any]:
        key = binding.key
        state = self.state(key)
        self._generation[key] = self._generation.get(key, 0) + 1

        if not binding.is_active(snapshot):
            state.loading, state.error, state.pending_tag = False, None, None
            return {}

        country, postal = binding.inputs(snapshot)
        clear = {path: "" for path in (binding.region_path, binding.city_path)
                 if not is_blank(get_value(snapshot, path))}
        min_len = self.settings.min_postal_code_length

        if not postal or len(postal) < min_len or not country:
            state.loading, state.result, state.pending_tag = False, None, None
            if postal and len(postal) < min_len:
                state.error = TOO_SHORT.format(n=min_len)
            elif postal and not country:
                state.error = SELECT_COUNTRY
            else:
                state.error = None
            return clear

        iso2 = resolve_iso2(country)
        if iso2 is None:
            state.loading, state.result, state.pending_tag = False, None, None
            state.error = INVALID_COUNTRY.format(country=country)
            logger.warning("Address group %s: %s", key, state.error)
            return clear

        query = AddressQuery(country, postal)
        state.pending_tag = query.tag
        state.error = None
        self._schedule(binding, query, iso2, self._generation[key])
        return {}

    # -- asynchronous part --------------------------------------------------

    def _schedule(self, binding: AddressBinding, query: AddressQuery, iso2: str, generation: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; lookup for %s (%s) not scheduled", binding.key, query.tag)
            return
        self.state(binding.key).loading = True
        task = loop.create_task(self._lookup_after_quiet(binding, query, iso2, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _lookup_after_quiet(self, binding: AddressBinding, query: AddressQuery,
                                  iso2: str, generation: int) -> None:
        await asyncio.sleep(self.settings.debounce_seconds)
        if self._generation.get(binding.key) != generation:
            return  # a later edit restarted the quiet interval

        logger.debug("Address lookup for %s: %s", binding.key, query.tag)
        result: Optional[AddressResult] = None
        error: Optional[str] = None
        try:
            data = await asyncio.to_thread(self.client.fetch, iso2, query.postal_code)
            result = resolve_address(data)
        except AddressLookupError as e:
            error = str(e)

        snapshot = self._read()
        if not self._is_current(binding, query, snapshot):
            logger.debug("Discarding stale lookup for %s: %s", binding.key, query.tag)
            return

        state = self.state(binding.key)
        state.loading = False
        state.pending_tag = None
        if result is not None:
            logger.debug("Applying lookup for %s: %s / %s", binding.key, result.chosen_region, result.chosen_city)
            state.result, state.error = result, None
            self._write({binding.region_path: result.chosen_region, binding.city_path: result.chosen_city})
        else:
            logger.warning("Address lookup failed for %s (%s): %s", binding.key, query.tag, error)
            state.result, state.error = None, error
            self._write({binding.region_path: "", binding.city_path: ""})

    def _is_current(self, binding: AddressBinding, query: AddressQuery, snapshot: Mapping[str, Any]) -> bool:
        if not self._binding_exists(binding, snapshot) or not binding.is_active(snapshot):
            return False
        country, postal = binding.inputs(snapshot)
        return AddressQuery(country, postal).tag == query.tag

    async def wait_idle(self) -> None:
        """Wait until every scheduled lookup has finished or been dropped."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def pending(self) -> int:
        return len(self._tasks)

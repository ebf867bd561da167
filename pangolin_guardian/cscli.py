"""
Argument builders for ``cscli``, the CrowdSec command line.

Each function returns the argv to run inside the CrowdSec container. Values
coming from users are validated here so a typo fails before anything is
executed.
"""

import ipaddress
import json
from collections import Counter
from typing import Dict, Iterable, List, Optional, Union

from pangolin_guardian.errors import ValidationError

CSCLI = "cscli"

DECISION_TYPES = ("ban", "captcha", "whitelist")
DECISION_SCOPES = ("ip", "range", "username")
HUB_ITEM_KINDS = ("parsers", "scenarios", "collections", "appsec-configs", "appsec-rules")

DEFAULT_DURATION = "24h"
DEFAULT_REASON = "manual"


def _cmd(*parts) -> List[str]:
    return [CSCLI, *parts]


def validate_ip(value: str) -> str:
    try:
        ipaddress.ip_address(value.strip())
    except ValueError as exc:
        raise ValidationError(f"`{value}` is not a valid IP address") from exc
    return value.strip()


def validate_range(value: str) -> str:
    try:
        ipaddress.ip_network(value.strip(), strict=False)
    except ValueError as exc:
        raise ValidationError(f"`{value}` is not a valid IP range") from exc
    return value.strip()


def split_names(names: Union[str, Iterable[str], None]) -> List[str]:
    """Accept ``"a, b c"`` or an iterable and return the individual names."""
    if names is None:
        return []
    if isinstance(names, str):
        names = names.replace(",", " ").split()
    return [name.strip() for name in names if name and name.strip()]


def _choice(value: str, allowed, label: str) -> str:
    if value not in allowed:
        raise ValidationError(f"{label} must be one of {', '.join(allowed)}")
    return value


# Decisions

def decisions_list(ip=None, range=None, scenario=None, type=None, scope=None, value=None,
                   all=False, limit=None, output=None) -> List[str]:
    cmd = _cmd("decisions", "list")
    if ip:
        cmd += ["--ip", validate_ip(ip)]
    if range:
        cmd += ["--range", validate_range(range)]
    if scenario:
        cmd += ["--scenario", scenario]
    if type:
        cmd += ["--type", type]
    if scope:
        cmd += ["--scope", scope]
    if value:
        cmd += ["--value", value]
    if all:
        cmd.append("--all")
    if limit:
        cmd += ["--limit", str(int(limit))]
    if output:
        cmd += ["-o", output]
    return cmd


def decisions_add(type: str, value: str, scope: str = "ip", duration: Optional[str] = None,
                  reason: Optional[str] = None) -> List[str]:
    _choice(type, DECISION_TYPES, "Decision type")
    _choice(scope, DECISION_SCOPES, "Scope")
    if not value or not value.strip():
        raise ValidationError("A value is required")
    value = value.strip()

    if scope == "range" or "/" in value:
        cmd = _cmd("decisions", "add", "--range", validate_range(value), "--type", type)
    elif scope == "ip":
        cmd = _cmd("decisions", "add", "--ip", validate_ip(value), "--type", type)
    else:
        cmd = _cmd("decisions", "add", "--scope", scope, "--value", value, "--type", type)

    cmd += ["--duration", duration or DEFAULT_DURATION, "--reason", reason or DEFAULT_REASON]
    return cmd


def decisions_delete(ip=None, range=None, id=None, type=None, scope=None, value=None) -> List[str]:
    if not (ip or range or id or type or (scope and value)):
        raise ValidationError("At least one filter must be provided to delete decisions")
    cmd = _cmd("decisions", "delete")
    if ip:
        cmd += ["--ip", validate_ip(ip)]
    if range:
        cmd += ["--range", validate_range(range)]
    if id:
        cmd += ["--id", str(id)]
    if type:
        cmd += ["--type", type]
    if scope and value:
        cmd += ["--scope", scope, "--value", value]
    return cmd


# Alerts

def alerts_list(ip=None, scenario=None, since=None, limit=None) -> List[str]:
    cmd = _cmd("alerts", "list")
    if ip:
        cmd += ["--ip", validate_ip(ip)]
    if scenario:
        cmd += ["--scenario", scenario]
    if since:
        cmd += ["--since", since]
    if limit:
        cmd += ["--limit", str(int(limit))]
    return cmd


def alerts_inspect(alert_id) -> List[str]:
    alert_id = str(alert_id).strip()
    if not alert_id.isdigit():
        raise ValidationError("Alert id must be a number")
    return _cmd("alerts", "inspect", alert_id)


def alerts_flush() -> List[str]:
    return _cmd("alerts", "flush")


# Bouncers and machines

def _agent(kind: str, action: str, name: Optional[str] = None) -> List[str]:
    if action in ("list", "prune"):
        return _cmd(kind, action)
    if not name or not name.strip():
        raise ValidationError(f"A name is required to {action} {kind}")
    return _cmd(kind, action, name.strip())


def bouncers(action: str, name: Optional[str] = None) -> List[str]:
    _choice(action, ("list", "add", "delete", "prune"), "Action")
    return _agent("bouncers", action, name)


def machines(action: str, name: Optional[str] = None) -> List[str]:
    _choice(action, ("list", "add", "delete", "validate", "prune"), "Action")
    return _agent("machines", action, name)


# Hub

def hub(action: str) -> List[str]:
    return _cmd("hub", _choice(action, ("list", "update", "upgrade"), "Action"))


def hub_item(kind: str, action: str, names=None, all: bool = False) -> List[str]:
    _choice(kind, HUB_ITEM_KINDS, "Kind")
    _choice(action, ("list", "inspect", "install", "remove", "upgrade"), "Action")
    names = split_names(names)

    if action == "list":
        return _cmd(kind, "list")
    if action == "inspect":
        if len(names) != 1:
            raise ValidationError("Inspect takes exactly one name")
        return _cmd(kind, "inspect", names[0])
    if action in ("remove", "upgrade") and all:
        return _cmd(kind, action, "--all")
    if not names and action != "upgrade":
        raise ValidationError(f"Provide at least one name to {action}")
    return _cmd(kind, action, *names)


# Allowlists

def allowlists(action: str, name: Optional[str] = None, values=None, description: Optional[str] = None,
               expiration: Optional[str] = None) -> List[str]:
    _choice(action, ("create", "add", "list", "inspect", "remove", "delete"), "Action")
    if action == "list":
        return _cmd("allowlists", "list")
    if not name or not name.strip():
        raise ValidationError("An allowlist name is required")
    name = name.strip()

    if action == "create":
        return _cmd("allowlists", "create", name, "--description", description or name)
    if action in ("inspect", "delete"):
        return _cmd("allowlists", action, name)

    targets = split_names(values)
    if not targets:
        raise ValidationError(f"Provide at least one IP or range to {action}")
    for target in targets:
        if "/" in target:
            validate_range(target)
        else:
            validate_ip(target)
    cmd = _cmd("allowlists", action, name, *targets)
    if action == "add" and expiration and expiration != "never":
        cmd += ["--expiration", expiration]
    return cmd


# Misc

def metrics(output: Optional[str] = None) -> List[str]:
    cmd = _cmd("metrics")
    if output:
        cmd += ["-o", output]
    return cmd


def capi_status() -> List[str]:
    return _cmd("capi", "status")


def explain(log_line: str, log_type: str) -> List[str]:
    if not log_line or not log_type:
        raise ValidationError("Both a log line and a log type are required")
    return _cmd("explain", "--log", log_line, "--type", log_type)


def _load_items(json_text: Optional[str]) -> list:
    if not json_text or not json_text.strip():
        return []
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Unexpected cscli output: {exc}") from exc
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def count_json_items(json_text: Optional[str]) -> int:
    return len(_load_items(json_text))


def summarize_decisions(json_text: Optional[str]) -> Dict[str, int]:
    """Count decisions per type from ``cscli decisions list -o json``.

    The JSON is a list of alerts, each carrying its own ``decisions`` list.
    """
    counts = Counter()
    for alert in _load_items(json_text):
        for decision in alert.get("decisions") or []:
            counts[decision.get("type", "unknown")] += 1
    return dict(counts)

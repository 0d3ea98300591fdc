from apps.common.exceptions import BadRequest


def is_transition_valid(table, from_status, to_status) -> bool:
    if from_status == to_status:
        return False
    return to_status in table.get(from_status, frozenset())


def ensure_transition(table, from_status, to_status, detail=None):
    if not is_transition_valid(table, from_status, to_status):
        raise BadRequest(
            detail or f"Cannot transition from {from_status} to {to_status}",
            code="invalid_transition",
            fields={"from_status": from_status, "to_status": to_status},
        )

from enum import Enum


class ConversationStatus(str, Enum):
    BOT = "bot"
    NEEDS_AGENT = "needs_agent"
    AGENT = "agent"
    CLOSED = "closed"


HUMAN_OWNED_STATUSES = (ConversationStatus.NEEDS_AGENT, ConversationStatus.AGENT)

VALID_TRANSITIONS = {
    ConversationStatus.BOT: [ConversationStatus.NEEDS_AGENT, ConversationStatus.CLOSED],
    ConversationStatus.NEEDS_AGENT: [ConversationStatus.AGENT, ConversationStatus.CLOSED],
    ConversationStatus.AGENT: [ConversationStatus.NEEDS_AGENT, ConversationStatus.CLOSED],
    ConversationStatus.CLOSED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def request_agent(current: ConversationStatus) -> ConversationStatus:
    """Hand the conversation over to a human (handoff or quota exhaustion)."""
    return transition(current, ConversationStatus.NEEDS_AGENT)


def assign_agent(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.AGENT)


def unassign_agent(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.NEEDS_AGENT)


def close(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.CLOSED)


def is_human_owned(status: str) -> bool:
    return status in {s.value for s in HUMAN_OWNED_STATUSES}

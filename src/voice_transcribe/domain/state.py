from enum import Enum


class SessionState(Enum):
    INIT = "Init"
    REQUESTING_MEDIA = "RequestingMedia"
    OPENING_WEBSOCKET = "OpeningWebSocket"
    RUNNING = "Running"
    FINISHING_RECORDING = "FinishingRecording"
    FINISHING_PROCESSING = "FinishingProcessing"
    FINISHING_EARLY = "FinishingEarly"
    FINISHED = "Finished"
    ERROR = "Error"
    CANCELED = "Canceled"


class UserState(Enum):
    INIT = "Init"
    STARTING = "Starting"
    RUNNING = "Running"
    FINISHING = "Finishing"
    FINISHED = "Finished"
    ERROR = "Error"
    CANCELED = "Canceled"


_ENDINGS = {SessionState.ERROR, SessionState.CANCELED}

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.INIT: {SessionState.REQUESTING_MEDIA},
    SessionState.REQUESTING_MEDIA: {
        SessionState.OPENING_WEBSOCKET,
        SessionState.FINISHING_EARLY,
    } | _ENDINGS,
    SessionState.OPENING_WEBSOCKET: {
        SessionState.RUNNING,
        SessionState.FINISHING_EARLY,
    } | _ENDINGS,
    SessionState.RUNNING: {SessionState.FINISHING_RECORDING} | _ENDINGS,
    SessionState.FINISHING_RECORDING: {SessionState.FINISHING_PROCESSING} | _ENDINGS,
    SessionState.FINISHING_PROCESSING: {SessionState.FINISHED} | _ENDINGS,
    SessionState.FINISHING_EARLY: {SessionState.FINISHED} | _ENDINGS,
    SessionState.FINISHED: set(),
    SessionState.ERROR: set(),
    SessionState.CANCELED: set(),
}

USER_STATES: dict[SessionState, UserState] = {
    SessionState.INIT: UserState.INIT,
    SessionState.REQUESTING_MEDIA: UserState.STARTING,
    SessionState.OPENING_WEBSOCKET: UserState.STARTING,
    SessionState.RUNNING: UserState.RUNNING,
    SessionState.FINISHING_RECORDING: UserState.FINISHING,
    SessionState.FINISHING_PROCESSING: UserState.FINISHING,
    SessionState.FINISHING_EARLY: UserState.FINISHING,
    SessionState.FINISHED: UserState.FINISHED,
    SessionState.ERROR: UserState.ERROR,
    SessionState.CANCELED: UserState.CANCELED,
}

TERMINAL_STATES = frozenset({SessionState.FINISHED, SessionState.ERROR, SessionState.CANCELED})

WEBSOCKET_STATES = frozenset({
    SessionState.OPENING_WEBSOCKET,
    SessionState.RUNNING,
    SessionState.FINISHING_RECORDING,
    SessionState.FINISHING_PROCESSING,
})

RESPONSE_STATES = frozenset({
    SessionState.RUNNING,
    SessionState.FINISHING_RECORDING,
    SessionState.FINISHING_PROCESSING,
})


class InvalidTransitionError(Exception):
    pass


def is_inactive(state: SessionState) -> bool:
    return state is SessionState.INIT or state in TERMINAL_STATES


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")

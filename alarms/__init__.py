"""Alarm scheduling and execution for the AlarmPi daemon."""

from .controller import AlarmController, AlarmRuntimeState
from .context import AlarmContext
from .notifications import ProcessingQueue
from .storage import Alarm, AlarmPhase
from .store import AlarmStore

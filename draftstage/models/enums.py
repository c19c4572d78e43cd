"""Enumerations for draftstage."""

from enum import Enum


class BindingState(str, Enum):
    """State of an autosave controller."""
    
    IDLE = "idle"
    """No job is bound; nothing is scheduled."""
    
    BOUND = "bound"
    """A job and its form data are bound and a timer is running."""


class SaveOutcome(str, Enum):
    """Result of a single autosave tick."""
    
    NOT_BOUND = "not_bound"
    """The controller had nothing bound when the tick ran."""
    
    UNCHANGED = "unchanged"
    """The data matched the last saved snapshot; no write was issued."""
    
    SAVED = "saved"
    """The data changed and the draft was written."""
    
    FAILED = "failed"
    """The data changed but the write raised."""

"""Hide and display architecture views."""

from archgroup.visibility.machine import VisibilityStateMachine

__all__ = ["VisibilityStateMachine"]

from .admission_mixin import AdmissionMixin
from .buttons_mixin import ButtonsMixin
from .commands_mixin import CommandsMixin
from .dialogue_mixin import DialogueMixin

__all__ = [
    "AdmissionMixin",
    "ButtonsMixin",
    "CommandsMixin",
    "DialogueMixin",
]

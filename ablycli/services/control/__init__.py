from ablycli.services.control.api import ControlApi

__all__ = ["ControlApi"]

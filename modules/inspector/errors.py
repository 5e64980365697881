"""
Inspector Errors
"""


class InspectorError(Exception):
    """Base class for inspector errors"""


class RadioUnavailable(InspectorError):
    """The radio could not start scanning (powered off, unsupported or unauthorized)"""

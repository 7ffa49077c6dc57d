"""Policy position crawler: fetches official websites and classifies stated positions."""

__version__ = "0.4.0"

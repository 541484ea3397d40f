from abc import ABC, abstractmethod
from typing import List
import logging


class SnowmixListener(ABC):

    @abstractmethod
    def connected(self):
        pass

    @abstractmethod
    def disconnected(self):
        pass

    def data_received(self, data: bytes):
        pass

    def greeting_received(self, version: str):
        """Called with the server version announced after connecting."""
        pass

    def status_line_received(self, line: str):
        """Called for every raw "STAT:" line, including the empty one ending a response."""
        pass

    def message_received(self, message: str):
        """Called for "MSG:" lines. Snowmix reports command errors this way."""
        pass

    def error(self, error_message: str):
        # By default, do nothing but can be overwritten to be notified of these messages.
        pass


class MultiplexingListener(SnowmixListener):

    _listeners: List[SnowmixListener]

    def __init__(self):
        self._listeners = []

    def connected(self):
        for listener in self._listeners:
            listener.connected()

    def disconnected(self):
        for listener in self._listeners:
            listener.disconnected()

    def data_received(self, data: bytes):
        for listener in self._listeners:
            listener.data_received(data)

    def greeting_received(self, version: str):
        for listener in self._listeners:
            listener.greeting_received(version)

    def status_line_received(self, line: str):
        for listener in self._listeners:
            listener.status_line_received(line)

    def message_received(self, message: str):
        for listener in self._listeners:
            listener.message_received(message)

    def error(self, error_message: str):
        for listener in self._listeners:
            listener.error(error_message)

    def register_listener(self, listener: SnowmixListener):
        self._listeners.append(listener)

    def unregister_listener(self, listener: SnowmixListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
        else:
            logging.info("Listener isn't registered")


class LoggingListener(SnowmixListener):

    def __init__(self, logger = logging):
        self.logger = logger

    def connected(self):
        self.logger.info("Connected")

    def disconnected(self):
        self.logger.info("Disconnected")

    def greeting_received(self, version: str):
        self.logger.info(f"Snowmix version: {version}")

    def message_received(self, message: str):
        self.logger.info(f"Snowmix says: {message}")

    def error(self, error_message: str):
        self.logger.error(f"Error: {error_message}")

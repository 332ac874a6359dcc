import unittest
from typing import Protocol
from unittest.mock import MagicMock

from bindery import Container


class Contains:  # noqa: PLW1641
    def __init__(self, substring):
        self.substring = substring

    def __repr__(self):
        return f"Contains({self.substring!r})"

    def __eq__(self, other):
        return isinstance(other, str) and self.substring in other


class SmsSender(Protocol):
    def send(self, phone: str, text: str) -> None: ...


class InfoLogger(Protocol):
    def info(self, msg: object, *args: object) -> None: ...


class NullLogger:
    def info(self, msg: object, *args: object) -> None:
        pass


class GatewayClient:
    """Third party client with an API the application does not want to depend on."""

    def __init__(self):
        self.outbox: list[dict[str, str]] = []

    def post_message(self, payload: dict[str, str]) -> int:
        self.outbox.append(payload)
        return 202


class GatewayAdapter:
    def __init__(self, client: GatewayClient, logger: InfoLogger, sender_id: str = "APP") -> None:
        self._client = client
        self._logger = logger
        self._sender_id = sender_id

    def send(self, phone: str, text: str) -> None:
        self._logger.info("adapting to gateway client api")
        status = self._client.post_message({"from": self._sender_id, "to": phone, "body": text})
        if status != 202:  # noqa: PLR2004
            msg = "Gateway rejected the message"
            raise RuntimeError(msg)


class Notifier:
    def __init__(self, sms: SmsSender):
        self.sms = sms

    def notify(self, phone: str) -> None:
        self.sms.send(phone, "your order shipped")


class TestWiringAdapterForThirdPartyClient(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.bind(SmsSender, GatewayAdapter)
        self.client = GatewayClient()
        self.client.post_message = MagicMock(wraps=self.client.post_message)
        self.cont.instance(GatewayClient, self.client)
        self.logger = NullLogger()
        self.logger.info = MagicMock(wraps=self.logger.info)
        self.cont.instance(InfoLogger, self.logger)

    def test_adapter_calls_adaptee(self):
        sms: SmsSender = self.cont.make(SmsSender, {"sender_id": "SHOP"})
        sms.send("+15550100", "hello")

        assert self.client.post_message.call_count == 1
        assert self.client.post_message.call_args[0][0] == {"from": "SHOP", "to": "+15550100", "body": "hello"}

        assert self.logger.info.call_args[0][0] == Contains("gateway client")

    def test_consumer_receives_adapter(self):
        notifier = self.cont.make(Notifier)
        notifier.notify("+15550100")

        assert isinstance(notifier.sms, GatewayAdapter)
        assert self.client.outbox == [{"from": "APP", "to": "+15550100", "body": "your order shipped"}]


class TestAutoWiringAdapterForThirdPartyClient(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.bind(SmsSender, GatewayAdapter)
        self.cont.bind(InfoLogger, NullLogger)

    def test_adapter_is_built_with_fresh_client(self):
        sms: SmsSender = self.cont.make(SmsSender)
        sms.send("+15550100", "hello")

        assert isinstance(sms, GatewayAdapter)
        assert self.cont.make(SmsSender) is not sms

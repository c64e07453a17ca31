"""Channel adapters: pluggable provider integrations.

Adapters are grouped in a ``ChannelAdapters`` container that the
composition root injects into the dispatcher. Fake adapters are used by
default; real relays (SMTP, FCM, Twilio) implement the same ports.
"""

from dataclasses import dataclass, field

from notifications.channel.email_port import EmailPort
from notifications.channel.fake_email import FakeEmailAdapter
from notifications.channel.fake_push import FakePushAdapter
from notifications.channel.fake_sms import FakeSMSAdapter
from notifications.channel.push_port import PushPort
from notifications.channel.sms_port import SMSPort
from notifications.delivery.delivery import DeliveryChannel


@dataclass
class ChannelAdapters:
    """The provider adapters one orchestrator instance dispatches through.

    In-app delivery has no provider: the persisted notification is the
    inbox entry and the real-time push goes through fan-out.
    """

    email: EmailPort = field(default_factory=FakeEmailAdapter)
    push: PushPort = field(default_factory=FakePushAdapter)
    sms: SMSPort = field(default_factory=FakeSMSAdapter)

    def for_channel(self, channel):
        channel = DeliveryChannel(channel)
        if channel == DeliveryChannel.EMAIL:
            return self.email
        if channel == DeliveryChannel.PUSH:
            return self.push
        if channel == DeliveryChannel.SMS:
            return self.sms
        return None

    def reset(self):
        """Reset every fake adapter (useful between tests)."""
        for adapter in (self.email, self.push, self.sms):
            if hasattr(adapter, "reset"):
                adapter.reset()


__all__ = ["ChannelAdapters", "EmailPort", "PushPort", "SMSPort"]

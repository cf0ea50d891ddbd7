from relay.managers.channel.channel import ChannelManager

__all__ = ["ChannelManager"]

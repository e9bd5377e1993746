"""
Messaging gateways.

Adapters that turn platform messages into engine turns and deliver replies,
honouring the [NO_REPLY] and [MEDIA_SEND:...] contracts.
"""

"""checkin_bot.gateway package

Everything needed to hold one Discord Gateway session open and turn its
events into :class:`checkin_bot.verbs.CommandRequest` objects.

Modules
-------
* protocol – opcodes, frame decoding and payload builders.
* transport – aiohttp websocket wrapper exposing one typed event stream.
* session – the mutable :class:`Session` record and gateway discovery.
* reconnect – back-off and resume-vs-identify policy.
* heartbeat – the per-connection heartbeat scheduler.
* dispatcher – pure mapping from dispatch events to command requests.
* client – :class:`GatewayClient`, which drives all of the above.
"""

"""Live media relay between a call's media stream and the operator's browser.

PSTN -> Twilio Media Streams (WS producer) -> RelayHub -> listener WS.
"""

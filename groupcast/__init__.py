"""GroupCast controller.

Controls Sonos households over SOAP/UPnP: group aware transport and volume
commands plus notifications that interrupt and then restore playback.
"""

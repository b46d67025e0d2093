class InvalidMQTTURLException(ValueError):
    """MQTT URL could not be parsed into host and port."""


class UnsupportedMQTTURLException(ValueError):
    """MQTT URL uses a scheme other than mqtt://."""

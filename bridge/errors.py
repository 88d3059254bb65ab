class PluginError(Exception):
    """Base class for rejections delivered to a bridge caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(PluginError):
    status_code = 400


class ExternalOperationFailed(PluginError):
    status_code = 502


class UnknownFailure(PluginError):
    status_code = 500


class Unimplemented(PluginError):
    status_code = 404

class FlowhookError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MediaFetchError(FlowhookError):
    pass


class SendError(FlowhookError):
    pass


class EngineError(FlowhookError):
    pass


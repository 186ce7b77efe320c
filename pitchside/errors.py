from flask import jsonify


class PitchsideError(Exception):
    """Base class for errors that are reported back to the caller."""
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()

    def default_message(self):
        return 'Unexpected error'

    def to_dict(self):
        return {'error': self.message}


class ValidationError(PitchsideError):
    status_code = 400

    def default_message(self):
        return 'Invalid request'


class InvalidEventType(ValidationError):
    pass


class AuthorizationError(PitchsideError):
    status_code = 403

    def __init__(self, reason=None):
        # the reason is for logs only, callers always see the same message
        super().__init__('Permission denied')
        self.reason = reason


class NotFoundError(PitchsideError):
    status_code = 404

    def default_message(self):
        return 'Not found'


class ConflictError(PitchsideError):
    status_code = 409

    def default_message(self):
        return 'Conflict'


class RosterFull(ConflictError):
    pass


class LineupIncomplete(ConflictError):
    pass


class InvalidTransition(ConflictError):
    pass


class DependencyFailure(PitchsideError):
    status_code = 503

    def default_message(self):
        return 'Storage is unavailable, please retry'


def register_error_handlers(app):
    @app.errorhandler(PitchsideError)
    def handle_pitchside_error(err):
        if isinstance(err, AuthorizationError):
            app.logger.warning('Authorization refused: %s', err.reason)
        elif isinstance(err, DependencyFailure):
            app.logger.error('Dependency failure: %s', err.message)
        return jsonify(err.to_dict()), err.status_code

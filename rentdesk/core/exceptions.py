class ReportConfigurationError(Exception):
    pass
class EmailConfigurationError(Exception):
    pass
class TemplateNotFoundError(Exception):
    pass
class DatabaseNotInitializedError(RuntimeError):
    pass

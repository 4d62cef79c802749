class ScimkitUserWarning(UserWarning):
    """
    Emitted when the library detects a questionable, but not invalid, schema declaration
    or value.
    """

class InvalidConfiguration(ValueError):
    """
    Raised when an option passed to an estimator has an unsupported type or
    value. The message names the offending argument and the value received.
    """
    pass


class MissingData(ValueError):
    """Raised when the treatment column (or a distance covariate) has missing values."""
    pass


class NonBinaryTreatment(ValueError):
    """Raised when the treatment takes values outside {0, 1} / {False, True}."""
    pass


class EmptyPool(ValueError):
    """Raised when partitioning leaves no treated or no control units."""
    pass


class MissingCovariates(ValueError):
    """
    Raised when covariates named in the model formula are absent from the
    dataframe, so Mahalanobis distances cannot be computed.
    """
    pass


class SingularCovariance(ValueError):
    """
    Raised when the (ridge-regularised) covariance matrix of the control
    covariates is not positive-definite and cannot be inverted.
    """
    pass

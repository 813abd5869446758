# physics_utils.py

import math

import numpy as np

class PhysicsError(Exception):
    """Custom exception for physics-related errors, including numerical issues."""
    pass

def safe_divide(numerator, denominator, epsilon=1e-12, default_on_zero_denom=0.0):
    """
    Safely divides two numbers, handling potential division by zero.

    Args:
        numerator (float): The number to be divided.
        denominator (float): The number to divide by.
        epsilon (float): Threshold below which the denominator is considered zero.
        default_on_zero_denom (float): Value to return if denominator is effectively zero
                                       or if either operand is not finite.

    Returns:
        float: The result of the division, or default_on_zero_denom when the
               quotient would be undefined or non-finite.
    """
    if not is_finite_number(numerator) or not is_finite_number(denominator):
        return default_on_zero_denom
    if abs(denominator) < epsilon:
        return default_on_zero_denom
    result = numerator / denominator
    if not math.isfinite(result):
        return default_on_zero_denom
    return result

def is_finite_number(value) -> bool:
    """True for real numbers that are neither NaN nor +/-infinity."""
    try:
        return math.isfinite(value)
    except TypeError:
        return False

def vector3(values) -> np.ndarray:
    """
    Coerces a 3-component sequence into a float64 numpy array.

    Raises:
        PhysicsError: If the input does not have exactly three components.
    """
    vector = np.asarray(values, dtype=np.float64)
    if vector.shape != (3,):
        raise PhysicsError(f"Expected a 3-component vector, got shape {vector.shape}.")
    return vector

def vector_norm(vector) -> float:
    """Euclidean length of a vector as a plain float (NaN propagates)."""
    return float(np.linalg.norm(vector))

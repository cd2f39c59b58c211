"""
Utility functions for PCM16 sample buffers, base64 conversion and event ids.
"""

import base64
import logging
import secrets
import string
from typing import Union

import numpy as np

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_letters + string.digits


def generate_id(prefix: str, length: int = 21) -> str:
    """
    Generate a random id, e.g. ``evt_Xa81...``.

    Args:
        prefix (str): Prefix to prepend to the id.
        length (int): Total length of the id, prefix included.

    Returns:
        str: Unique id.
    """
    random_length = max(length - len(prefix), 0)
    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(random_length))


def empty_audio() -> np.ndarray:
    return np.zeros(0, dtype=np.int16)


def float_to_16bit_pcm(float32_array: np.ndarray) -> np.ndarray:
    """
    Convert a float32 numpy array to int16 PCM format.

    Args:
        float32_array (np.ndarray): Input array of dtype float32.

    Returns:
        np.ndarray: Output array of dtype int16.
    """
    if float32_array.dtype != np.float32:
        logger.warning("Input array is not float32, attempting conversion.")
        float32_array = float32_array.astype(np.float32)

    int16_array = np.clip(float32_array, -1, 1) * 32767
    return int16_array.astype(np.int16)


def base64_to_array_buffer(base64_string: str) -> np.ndarray:
    """
    Decode a base64 string of little-endian PCM16 audio into int16 samples.

    Args:
        base64_string (str): Base64-encoded input string.

    Returns:
        np.ndarray: Decoded samples as an int16 numpy array.
    """
    try:
        binary_data = base64.b64decode(base64_string)
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to decode base64 string: {e}")
        raise
    if len(binary_data) % 2:
        logger.warning("Odd number of audio bytes, dropping the trailing byte.")
        binary_data = binary_data[:-1]
    return np.frombuffer(binary_data, dtype="<i2").astype(np.int16)


def array_buffer_to_base64(array_buffer: Union[np.ndarray, bytes, bytearray]) -> str:
    """
    Encode an audio buffer into a base64 string.

    Float32 samples are converted to PCM16 first; raw bytes are encoded as-is.

    Args:
        array_buffer (np.ndarray | bytes): Input audio buffer.

    Returns:
        str: Base64-encoded string.
    """
    if isinstance(array_buffer, (bytes, bytearray)):
        return base64.b64encode(bytes(array_buffer)).decode("utf-8")
    if array_buffer.dtype == np.float32:
        logger.debug("Converting float32 array to int16 PCM before encoding.")
        array_buffer = float_to_16bit_pcm(array_buffer)
    return base64.b64encode(array_buffer.tobytes()).decode("utf-8")


def merge_int16_arrays(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """
    Merge two int16 numpy arrays into a single array.

    Args:
        left (np.ndarray): First array (must be int16).
        right (np.ndarray): Second array (must be int16).

    Returns:
        np.ndarray: Concatenated int16 array.

    Raises:
        ValueError: If input arrays are not both int16.
    """
    if left.dtype != np.int16 or right.dtype != np.int16:
        logger.error("Attempted to merge arrays that are not int16.")
        raise ValueError("Both arrays must have dtype int16.")
    return np.concatenate((left, right))

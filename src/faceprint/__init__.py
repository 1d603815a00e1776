"""FACEPRINT: photo check-in attendance backed by perceptual image hashing.

The matching engine compares whole images, not faces. It is a lightweight
stand-in for a real face-recognition service.
"""

__version__ = "0.1.0"

"""
Boot Mode checksums.

Frame checksum: two's complement of the 8-bit sum of every preceding frame
byte, so that all bytes of a valid frame (checksum included) sum to zero.

Area checksum: 32-bit sum of every byte in a memory area, as returned by the
user area and user boot area checksum commands.
"""


class Checksum:
    """Checksum calculations used by the Boot Mode protocol."""

    @staticmethod
    def calculate(data: bytes) -> int:
        """
        Calculate the frame checksum of data.

        Args:
            data: Frame bytes preceding the checksum

        Returns:
            Checksum byte (0-255)
        """
        return -sum(data) & 0xFF

    @staticmethod
    def verify(data: bytes) -> bool:
        """Check a complete frame whose last byte is its checksum."""
        return sum(data) & 0xFF == 0

    @staticmethod
    def sum32(data: bytes, initial: int = 0) -> int:
        """32-bit byte sum, as computed by the target for area checksums."""
        return (initial + sum(data)) & 0xFFFFFFFF

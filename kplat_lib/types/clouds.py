"""Cloud backend type definitions."""

from enum import Enum


class KPlatCloud(str, Enum):
    """
    Cloud backends the platform can be provisioned on.

    Each backend has its own managed-Kubernetes adapter under kplat_lib.cal.adapters.
    """

    AWS = "aws"
    AZURE = "azure"

    @property
    def default_region(self) -> str:
        """Region used when none is configured."""
        regions = {
            KPlatCloud.AWS: "us-west-2",
            KPlatCloud.AZURE: "westus2",
        }
        return regions[self]

    @classmethod
    def from_string(cls, value: str) -> "KPlatCloud":
        """
        Get cloud from string.

        Args:
        ----
            value: Cloud string (case-insensitive)

        Returns:
        -------
            Corresponding KPlatCloud

        Raises:
        ------
            ValueError: If value doesn't match any cloud

        Example:
        -------
            >>> KPlatCloud.from_string('AWS')
            <KPlatCloud.AWS: 'aws'>

        """
        value_lower = value.lower().strip()

        try:
            return cls(value_lower)
        except ValueError:
            pass

        valid_clouds = ", ".join(c.value for c in cls)
        raise ValueError(f"Invalid cloud: '{value}'. " f"Valid clouds: {valid_clouds}")

"""trendscout - spot rising items across public sources before they peak."""

__version__ = "0.1.0"

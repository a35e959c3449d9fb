"""D-STAR gateway building blocks: packets, Golay decoding, routing cache, configuration, database, DPlus client and DVAP control."""

__version__ = "0.1.0"
from safereport.realtime.hub import ConnectionHub

__all__ = ["ConnectionHub"]

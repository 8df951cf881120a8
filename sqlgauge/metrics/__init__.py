from sqlgauge.metrics.sink import MetricSink

__all__ = ["MetricSink"]

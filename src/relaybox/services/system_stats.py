import psutil

from relaybox.models.schemas import SystemStats


def collect_system_stats() -> SystemStats:
    """Host CPU and memory utilisation, formatted as percentages."""
    # Non-blocking: utilisation since the previous call
    cpu = psutil.cpu_percent(interval=None)
    memory = psutil.virtual_memory().percent
    return SystemStats(
        cpuUsage=f"{cpu:.2f}%",
        memoryUsage=f"{memory:.2f}%",
        workers=psutil.cpu_count() or 1,
    )

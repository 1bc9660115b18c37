"""Per-run performance metrics and averaging across runs."""

from dataclasses import dataclass, fields


@dataclass
class PerformanceMetrics:
    encrypt_time_ms: float = 0
    store_record_latency_ms: float = 0
    fetch_latency_ms: float = 0
    keygen_time_ms: float = 0
    authorization_time_ms: float = 0
    decrypt_time_ms: float = 0
    proof_size_bytes: int = 0
    handles_decrypted: int = 0


LATENCY_KEYS = ("store_record_latency_ms", "fetch_latency_ms")


def calculate_averages(successful_runs):
    """Average metrics from successful runs; ledger latencies of -1 mark skipped steps."""
    if not successful_runs:
        return None

    keys = [f.name for f in fields(PerformanceMetrics)]
    averages = {}
    std_devs = {}
    ledger_counts = {}

    for key in keys:
        values = [run["metrics"][key] for run in successful_runs if key in run["metrics"]]
        if key in LATENCY_KEYS:
            values = [v for v in values if v > 0]
            ledger_counts[key] = len(values)
        if not values:
            averages[key] = -1
            std_devs[key] = 0
            continue

        mean = sum(values) / len(values)
        averages[key] = mean
        if len(values) > 1:
            std_devs[key] = (sum((x - mean) ** 2 for x in values) / len(values)) ** 0.5
        else:
            std_devs[key] = 0

    return {
        "averages": averages,
        "std_deviations": std_devs,
        "run_count": len(successful_runs),
        "ledger_success_counts": ledger_counts,
        "sample_verification": successful_runs[0]["verification"],
    }

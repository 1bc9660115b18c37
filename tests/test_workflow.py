"""
End-to-end workflow tests
"""

import json

from fitledger.config import load_config
from fitledger.workflow import SAMPLE_RECORD, execute_single_run, execute_workflow


async def test_single_run(tracker):
    result = await execute_single_run(tracker)

    assert result["verification"]["match"]
    assert result["verification"]["decrypted_data"] == [175, 70000, 120, 80]
    assert result["metrics"]["handles_decrypted"] == 4
    assert result["metrics"]["proof_size_bytes"] > 0
    assert result["test_info"]["record_index"] == 0


async def test_workflow_writes_results(tmp_path, capsys):
    config = load_config({})
    config.update(num_runs=2, data_dir=tmp_path / "results")

    aggregated = await execute_workflow(config)

    assert aggregated["statistics"] == {"total_runs": 2, "successful_runs": 2, "success_rate": 100.0}
    files = sorted(p.name for p in (tmp_path / "results").iterdir())
    assert files == [
        "aggregated_performance_results.json",
        "performance_results_run1.json",
        "performance_results_run2.json",
    ]
    with open(tmp_path / "results" / "aggregated_performance_results.json") as f:
        saved = json.load(f)
    assert saved["summary"]["sample_verification"]["original_data"] == list(SAMPLE_RECORD.values())
    assert [r["test_info"]["record_index"] for r in saved["individual_runs"]] == [0, 1]
    assert "AVERAGED PERFORMANCE SUMMARY (2 runs)" in capsys.readouterr().out

"""JSON export of ranked results."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.ranking import RankedResult


def export_json(
    result: RankedResult,
    output_path: Union[str, Path],
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """Export a ranked result to a JSON file.

    Parameters
    ----------
    result : RankedResult
        Ranked result
    output_path : Path
        Output file path
    metadata : Dict[str, Any], optional
        Run metadata (inputs summary, configs) stored under ``run``

    Returns
    -------
    Path
        Path to created file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = result.to_dict()
    data["run"] = metadata or {}
    data["export_timestamp"] = datetime.now().isoformat()

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)

    return output_path

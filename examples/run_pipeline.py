from __future__ import annotations

import json
import logging

from secgate import ReleaseRuntime


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    runtime = ReleaseRuntime.from_configs(
        pipeline_config_path="examples/security_pipeline.toml",
    )
    run = runtime.run()
    print(run.summary())
    print(json.dumps(run.to_dict()["diagnostics"], indent=2, sort_keys=True))


if __name__ == "__main__":
    main()

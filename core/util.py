import yaml
import pathlib
import datetime as dt


def parse_yaml(text: str):
    return yaml.safe_load(text)


def dump_yaml(data) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def ensure_dir(p):
    pathlib.Path(p).mkdir(parents=True, exist_ok=True)


def log(msg: str):
    ts = dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    print(f"{ts} {msg}", flush=True)

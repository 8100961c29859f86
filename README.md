# fuku

fuku is a Python library for running a set of local development services
together. Each service lives in its own directory and is started with
`make run`. fuku starts the services of a profile tier by tier, waits until
each one is ready, publishes their output as events, and stops them all,
newest first, when asked to or when it receives SIGINT or SIGTERM.

## Concepts

- **Services** (`fuku.config.ServiceConfig`) name a directory, an optional
  tier and an optional readiness check. A service without a tier belongs to
  the `default` tier (`ServiceConfig.effective_tier()`). Relative directories
  are taken from the current working directory. Every service is started with
  `ENV_FILE` set to the path of `.env.development` in its directory; a warning
  is logged when that file does not exist.
- **Profiles** (`fuku.config.Config.profiles`) map a profile name to a single
  service name, a list of service names, or `"*"` for every configured
  service.
- **Topology** (`fuku.config.Topology.order`) gives the order of tiers.
  Services in a tier the topology does not list are placed in the `default`
  tier, which runs last unless the topology places it elsewhere.
- **Readiness** (`fuku.config.Readiness`, `fuku.config.ReadinessType`) is
  either `HTTP`, which polls `url` every `interval` seconds until it answers
  with a 2xx status, or `LOG`, which waits for the regular expression
  `pattern` to match a line on stdout or stderr. Both give up after `timeout`
  seconds (30 by default).

## How a run proceeds

1. `fuku.discovery.Discovery.resolve(profile)` turns a profile into a list of
   `Tier` objects in start order; duplicate services are dropped and services
   within a tier are sorted by name.
2. `fuku.runner.Runner.run(profile, cancel)` starts the tiers one after
   another. Services in a tier start in parallel, limited by
   `fuku.workerpool.WorkerPool` (three at a time by default). A service that
   fails to start or to become ready is tried up to three times, half a second
   apart, before the run fails with `MaxRetriesExceededError`.
3. While services run, `fuku.events.Command` values published on
   `fuku.events.CommandBus` stop a service (`STOP_SERVICE`), restart or start
   it (`RESTART_SERVICE`), both with data `{"service": name}`, or stop
   everything (`STOP_ALL`). Phases, tier and service progress, retries,
   failures and every output line are published as `fuku.events.Event` values
   on `fuku.events.EventBus`. An `EventBus` created with a `buffer_size` drops
   non-critical events (log lines) for subscribers whose queue is full.
4. The run ends on `STOP_ALL`, on setting the `cancel` event, or on SIGINT or
   SIGTERM (signal handlers are installed only when `run` is called from the
   main thread). `Runner.shutdown()` then stops every process: its process
   group is sent SIGTERM and, if it has not exited within five seconds,
   SIGKILL (`fuku.lifecycle.Lifecycle.terminate`).

`fuku.registry.Registry` keeps track of running and detached processes.
`fuku.monitor.Monitor.get_stats(pid)` returns a `Stats` with the process's
CPU use (averaged over its lifetime, in percent) and resident memory in MB.

## Example

```python
from fuku.cli import CLI
from fuku.config import Config, Readiness, ReadinessType, ServiceConfig, Topology
from fuku.discovery import Discovery
from fuku.events import CommandBus, EventBus
from fuku.lifecycle import Lifecycle
from fuku.readiness import ReadinessChecker
from fuku.registry import Registry
from fuku.runner import Runner
from fuku.service import ServiceManager
from fuku.workerpool import WorkerPool

config = Config(
    services={
        "db": ServiceConfig(dir="db", tier="foundation"),
        "api": ServiceConfig(
            dir="api",
            tier="platform",
            readiness=Readiness(ReadinessType.HTTP, url="http://localhost:8080/health"),
        ),
    },
    profiles={"default": "*", "core": ["db"]},
)
topology = Topology(order=["foundation", "platform"])

events, commands = EventBus(), CommandBus()
service = ServiceManager(Lifecycle(), ReadinessChecker(), events)
runner = Runner(config, Discovery(config, topology), Registry(), service,
                WorkerPool(), events, commands)

exit_code = CLI(config, runner).run(["--run=core", "--no-ui"])
```

## Argument handling

`fuku.cli.CLI.run(args)` takes an argument list, prints to stdout and returns
an exit code. It understands:

| Arguments                        | Meaning                                |
|----------------------------------|----------------------------------------|
| `--run=<PROFILE>`                | run the services of a profile          |
| `run <PROFILE>` / `-r <PROFILE>` | the same                               |
| `--no-ui`                        | run without the interactive view       |
| `help` / `--help` / `-h`         | print usage, return 0                  |
| `version` / `--version` / `-v`   | print the version, return 0            |

With no command the default profile is run; an empty `--run=` also selects
it. Any other command prints a short hint and returns 1. A failed run prints
`Error: ...` and returns 1.

If `CLI` is given a `ui` factory, it is called as `ui(profile, cancel)` and
must return an object with a blocking `run()` method; the profile runs in the
background while it does. Without a factory, or with `--no-ui`, the profile
runs in the foreground.

## Errors

Failures are raised as subclasses of `fuku.errors.FukuError`, for example
`ProfileNotFoundError`, `ServiceNotFoundError`, `ReadinessTimeoutError`,
`StartupInterruptedError` or `MaxRetriesExceededError`, so callers can catch
them by kind.

## What it does not do

- There is no installed command: arguments are handled by calling
  `CLI.run` from Python.
- Configuration is not read from a file; `Config` and `Topology` are built in
  code.
- There is no interactive terminal view; one can only be supplied through the
  `ui` factory of `CLI`.

## Requirements

Python 3.10 or later on a POSIX system, `make` on the path for the services,
and `psutil` for process statistics.
# ndtwatch

This package has two parts:

* **Building blocks for 3D Normal Distributions Transform (NDT) scan
  matching.** It provides rigid-transform helpers, a point cloud type, a
  voxel grid that fits a Gaussian to each voxel, the NDT score with its
  gradient and hessian, and the More–Thuente line-search helpers.
* **A shared-memory vital-counter watchdog.** Cooperating processes keep a
  heartbeat counter in a named shared segment. An observer process advances
  those counters and raises a stop request when one of them stalls.

## Installation

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install .[test]
pytest
```

## NDT building blocks

### Transforms — `ndtwatch.geometry`

* `convert_transform(x)` turns `[x, y, z, roll, pitch, yaw]` into a 4×4
  matrix. The matrix is the translation followed by rotations about X, Y and
  Z, in that order.
* `matrix_to_vector(matrix)` does the reverse. Roll lies in `[0, pi]`;
  pitch and yaw lie in `[-pi, pi]`.
* `transform_points(points, matrix)` applies a 4×4 matrix to an `(N, 3)`
  array of points.

### Point clouds — `ndtwatch.cloud`

`PointCloud` holds the following:

* `points`, an `(N, 3)` array;
* a `width` × `height` layout;
* a `header` dict;
* an `is_dense` flag;
* `fields`, which hold extra per-point arrays such as intensity or colour.

It has these methods:

* `len(cloud)` gives the number of points.
* `copy()` returns an independent copy.
* `select(indices)` returns a subset. A full selection keeps the layout;
  any other selection becomes a single row.
* `transformed(matrix)` returns a moved copy.

### Covariance voxel grid — `ndtwatch.voxel_grid`

`VoxelGridCovariance(leaf_size=1.0, min_points_per_voxel=6)` works as
follows:

* `build(points)` splits the points into voxels. Each voxel with enough
  points becomes a `Leaf`, which holds the mean, the covariance, the inverse
  covariance and the eigen-decomposition.
* Small eigenvalues are raised to 1 % of the largest eigenvalue.
* `radius_search(point, radius)` returns the leaves whose mean lies within
  the radius, nearest first.

### Score and derivatives — `ndtwatch.derivatives`, `ndtwatch.scoring`

* `gauss_constants(outlier_ratio, resolution)` returns the Gaussian fitting
  constants `(d1, d2)`.
* `angle_derivatives`, `point_derivatives`, `update_derivatives` and
  `update_hessian` compute the angular, per-point and per-voxel terms.
* `scoring.compute_derivatives(...)` sums the score, gradient and hessian
  over a whole cloud. `scoring.compute_hessian(...)` returns the hessian
  alone.

```python
import numpy as np
from ndtwatch.cloud import PointCloud
from ndtwatch.derivatives import gauss_constants
from ndtwatch.geometry import convert_transform
from ndtwatch.scoring import compute_derivatives
from ndtwatch.voxel_grid import VoxelGridCovariance

rng = np.random.default_rng(0)
target = PointCloud(rng.uniform(-5, 5, size=(2000, 3)))
grid = VoxelGridCovariance(leaf_size=1.0)
grid.build(target)

source = target.select(range(500))
p = np.array([0.1, 0.0, 0.0, 0.0, 0.0, 0.02])
moved = source.transformed(convert_transform(p))

d1, d2 = gauss_constants(0.55, 1.0)
score, gradient, hessian = compute_derivatives(
    source.points, moved.points, grid, 1.0, p, d1, d2
)
```

### Line search — `ndtwatch.line_search`

These are the More–Thuente helpers:

* `psi` and `d_psi` are the auxiliary function and its derivative.
* `update_interval(interval, a_t, f_t, g_t)` updates an `Interval` in place
  and returns `True` once it has converged.
* `trial_value_selection(...)` picks the next trial step length.

### What is not included

The package has no ready-made registration object. There is nothing that
takes a source and a target cloud and runs the Newton iteration with the
line search to produce a final transform. The functions above provide the
score, gradient, hessian, voxel search and step-length pieces, but the
optimisation loop has to be written by the caller. There is also no
nearest-neighbour fitness score.

## Vital monitoring

### Shared segments — `ndtwatch.shm`

`SharedSegment` is a named, fixed-size, memory-mapped file. It holds named
`VitalCounter`, `StopFlag` and `InterprocessMutex` objects.

* Segments live under the directory named by `NDTWATCH_SHM_DIR`. If that is
  not set, they live under `<tempdir>/ndtwatch`.
* Create a segment with `SharedSegment.create(name, size)` and open it with
  `SharedSegment.open(name)`. Delete it with `SharedSegment.remove(name)`.
* Add objects with the `construct_*` methods and look them up with the
  `find_*` methods.
* Failures raise `SegmentError`.

### The observer command

```
ndtwatch-observer [--segment NAME]
```

The observer does the following:

1. It recreates the segment. The default segment name is
   `SharedMemoryForVitalMonitor`.
2. It constructs counters, mutexes and the `SHM_DRStopRequest` flag.
3. It polls at 100 Hz until it receives SIGINT, SIGTERM, SIGQUIT or SIGUSR1.
   It then removes the segment.

The same work is available in code as `ndtwatch.observer.RosObserver`, with
these methods:

* `step()` runs one polling cycle and returns the label of the failing
  module, or `None`.
* `run(stop_event)` keeps polling until the `threading.Event` is set.
* `close()` unmaps and removes the segment.

The observer watches these modules:

* `HealthAggregator`
* `EmergencyHandler`
* `TwistGate`
* `YMC_VehicleDriver`
* `AS_VehicleDriver`

On each cycle the observer does the following:

* Each activated counter grows by 10 ms, capped at 10000.
* When any counter exceeds its threshold, the health aggregator's status is
  set to `ERROR_DETECTED`.
* On the first such cycle the stop flag is set.
* A line naming the failing module is written to stderr.
* When every counter is back under its threshold, the status returns to
  `NORMAL` and the stop flag is cleared.

### Reporting a heartbeat — `ndtwatch.monitor`

```python
from ndtwatch.monitor import ShmVitalMonitor, VitalMonitorMode

monitor = ShmVitalMonitor("TwistGate", 100.0, VitalMonitorMode.CNT_CLEAR)
while True:
    monitor.run()
    ...
```

In `CNT_CLEAR` mode, `run()` behaves as follows:

* The first successful call activates the counter, sets its threshold to
  three polling intervals and zeroes it.
* Each later call zeroes the counter.

In `CNT_MON` mode, `run()` advances the counter and updates its status.

`is_error_detected()` reports whether the status is `ERROR_DETECTED`:

* If the monitor is not yet connected, the call connects and returns
  `False`.
* A lost connection counts as an error.

### Handling stop requests

```python
from ndtwatch.monitor import ShmDRStopRequest

request = ShmDRStopRequest()
if request.is_request_received():
    ...
    request.clear_request()
```

Both calls only connect on their first use. After that, they read or clear
the shared flag.
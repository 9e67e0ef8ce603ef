"""
Diagnostic script comparing fixed-point mixing settings.

Runs the matter fixed point of the reference system at a strong coupling
for several (mixing_depth, damping) pairs and reports iteration counts.
Settings that fail are reported with the last residual and whether the
residual history oscillated.
"""

import numpy as np
from tabulate import tabulate

from cqed_solver import CavityQEDSolver, MatterSystem, NonConvergence, PhotonSystem

ALPHA = 2.0
EMITTER = 0.3
SETTINGS = [
    (0, 1.0),
    (0, 0.5),
    (2, 1.0),
    (4, 1.0),
    (4, 0.5),
    (8, 0.3),
]


def run(matter, photon, depth, damping):
    solver = CavityQEDSolver(mixing_depth=depth, damping=damping, fixedpoint_max_iter=500)
    try:
        result = solver.solve(matter, photon, alpha=ALPHA, emitter_position=EMITTER)
    except NonConvergence as e:
        return [depth, damping, "no", e.diagnostics['iterations'],
                f"{e.diagnostics['final_residual']:.2e}",
                "yes" if e.diagnostics['oscillating'] else "no", "-"]
    info = result.matter.info
    return [depth, damping, "yes", info.iterations, f"{info.final_residual:.2e}", "-",
            f"{result.matter_energies[0]:.10f}"]


def main():
    matter = MatterSystem.from_tight_binding(np.zeros(4), 0.25, radius=1)
    photon = PhotonSystem.fabry_perot(5, length=1.0)

    print("=" * 80)
    print(f"MIXING DIAGNOSTIC: alpha = {ALPHA}, r0 = {EMITTER}")
    print("=" * 80)

    table_data = [run(matter, photon, depth, damping) for depth, damping in SETTINGS]
    headers = ["m", "beta", "converged", "iterations", "residual", "oscillating", "E_ref"]
    print(tabulate(table_data, headers=headers, tablefmt='grid'))

    print("\nIf plain substitution (m = 0, beta = 1) oscillates, increase m and reduce beta.")


if __name__ == "__main__":
    main()

# scripts/compare_schemes.py
from stocksim.sde.simulators.simulator import run_simulation

BASE = dict(
    seed=42,
    sample_count=2000,
    dt=0.01,
    sigma0=0.2,
    s0=50.0,
    xi0=0.2,
    mu=0.1,
    p=1.0,
    alpha=1.0,
    horizon=1.0,
)


def main():
    print(f"{'Method':<10} {'E[S_T]':>12} {'E[vol_T]':>12} {'E[xi_T]':>12}")
    print("-" * 50)
    for method in ("euler", "milstein", "rk"):
        paths = run_simulation(dict(BASE, method=method))
        term = paths.terminal().mean()
        print(
            f"{method:<10} {term['stock']:>12.6f} {term['vol']:>12.6f} {term['xi']:>12.6f}"
        )


if __name__ == "__main__":
    main()

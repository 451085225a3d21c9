from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import numpy as np

from trifactor.api.factor_io import load_factor
from trifactor.core.numerical_derivative import numerical_derivative
from trifactor.errors import CheiralityError
from trifactor.keys import default_key_formatter
from trifactor.nonlinear.values import Values

logger = logging.getLogger(__name__)


def _add_factor_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("factor", type=Path, help="Factor JSON document (trifactor.factor.triangulation.v0).")
    p.add_argument("--point", type=float, nargs=3, required=True, metavar=("X", "Y", "Z"), help="Landmark estimate.")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="trifactor")
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    ev = sub.add_parser("evaluate", help="Evaluate the reprojection residual at a landmark estimate.")
    _add_factor_args(ev)
    ev.add_argument("--jacobian", action="store_true", help="Also report d(residual)/d(point).")

    lin = sub.add_parser("linearize", help="Linearize the factor (whitened A, b) at a landmark estimate.")
    _add_factor_args(lin)

    chk = sub.add_parser(
        "check-jacobian",
        help="Compare the analytic Jacobian against central finite differences.",
    )
    _add_factor_args(chk)
    chk.add_argument("--delta", type=float, default=1e-5)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    factor = load_factor(args.factor)
    point = np.asarray(args.point, dtype=np.float64)
    logger.info("loaded factor on %s from %s", default_key_formatter(factor.key), args.factor)

    try:
        if args.cmd == "evaluate":
            residual, H = factor.evaluate_error(point, jacobian=args.jacobian)
            out = {"key": default_key_formatter(factor.key), "residual": residual.tolist()}
            if H is not None:
                out["jacobian"] = H.tolist()
            print(json.dumps(out))
            return 0

        if args.cmd == "linearize":
            values = Values({factor.key: point})
            linear = factor.linearize(values)
            if linear is None:
                print(json.dumps({"key": default_key_formatter(factor.key), "active": False}))
                return 0
            out = {
                "key": default_key_formatter(factor.key),
                "active": True,
                "A": linear.get_A(factor.key).tolist(),
                "b": linear.get_b().tolist(),
                "error": factor.error(values),
            }
            print(json.dumps(out))
            return 0

        if args.cmd == "check-jacobian":
            _, H = factor.evaluate_error(point, jacobian=True)
            H_num = numerical_derivative(lambda p: factor.evaluate_error(p)[0], point, delta=args.delta)
            out = {
                "key": default_key_formatter(factor.key),
                "analytic": H.tolist(),
                "numerical": H_num.tolist(),
                "max_abs_diff": float(np.max(np.abs(H - H_num))),
            }
            print(json.dumps(out))
            return 0
    except CheiralityError as e:
        logger.error("%s", e)
        return 2

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python

"""Unit testing for the iterative LQ game solver"""

import unittest

import numpy as np

from ilqgames import (
    DoubleIntDynamics4D,
    MultiDynamicalModel,
    OperatingPoint,
    PlayerCost,
    ProximityCost,
    ReferenceCost,
    SingularGameError,
    SolverConfig,
    SolverLog,
    SolverStatus,
    Strategy,
    StrategyModificationError,
    UnicycleDynamics4D,
    compute_strategy_costs,
    ilqGameProblem,
    ilqGameSolver,
    rollout,
)


def double_integrator_game(goals, config, control_weight=1.0):
    """Two planar double integrators, each tracking its own goal"""

    dynamics = MultiDynamicalModel(
        [DoubleIntDynamics4D(config.time_step), DoubleIntDynamics4D(config.time_step)]
    )

    player_costs = []
    for i, goal in enumerate(goals):
        player_cost = PlayerCost(f"p{i}")
        player_cost.add_state_cost(
            ReferenceCost(np.eye(4), goal, dims=np.arange(4 * i, 4 * (i + 1)))
        )
        player_cost.add_control_cost(i, ReferenceCost(control_weight * np.eye(2)))
        player_costs.append(player_cost)

    return ilqGameProblem(dynamics, player_costs, config)


class TestLinearQuadraticGame(unittest.TestCase):
    def setUp(self):
        self.config = SolverConfig(
            time_step=0.1, time_horizon=2.0, alpha_scaling=1.0, convergence_tolerance=1e-6
        )
        self.goals = [np.array([1.0, 1.0, 0, 0]), np.array([-1.0, 2.0, 0, 0])]
        self.problem = double_integrator_game(self.goals, self.config)
        self.x0 = np.array([0, 0, 0.5, 0, 2.0, 0, 0, -0.5])

    def test_equilibrium(self):
        problem = double_integrator_game([np.zeros(4), np.zeros(4)], self.config)
        solver = ilqGameSolver(problem)
        solution = solver.solve(np.zeros(8))

        self.assertEqual(solution.n_iterations, 1)
        self.assertEqual(solution.status, SolverStatus.CONVERGED)
        self.assertTrue(solution.reached_tolerance)
        self.assertEqual(solver.status, SolverStatus.CONVERGED)

    def test_converges(self):
        solution = ilqGameSolver(self.problem).solve(self.x0)

        self.assertEqual(solution.status, SolverStatus.CONVERGED)
        self.assertTrue(solution.reached_tolerance)
        self.assertLess(solution.n_iterations, self.config.max_iterations)
        self.assertTrue(np.allclose(solution.operating_point.xs[0], self.x0))

        # Both players make progress towards their goals.
        xf = solution.operating_point.xs[-1]
        self.assertLess(np.linalg.norm(xf[:2] - self.goals[0][:2]), np.linalg.norm(self.goals[0][:2]))
        self.assertLess(
            np.linalg.norm(xf[4:6] - self.goals[1][:2]),
            np.linalg.norm(self.x0[4:6] - self.goals[1][:2]),
        )

    def test_idempotent(self):
        solution = ilqGameSolver(self.problem).solve(self.x0)
        resolved = ilqGameSolver(self.problem).solve(
            self.x0, solution.operating_point, solution.strategies
        )

        self.assertEqual(resolved.n_iterations, 1)
        self.assertTrue(resolved.reached_tolerance)

    def test_round_trip(self):
        solution = ilqGameSolver(self.problem).solve(self.x0)
        op = rollout(
            self.problem.dynamics, solution.strategies, solution.operating_point, self.x0
        )
        self.assertLessEqual(
            op.max_difference(solution.operating_point), self.config.convergence_tolerance
        )

    def test_inputs_not_mutated(self):
        op = self.problem.initial_operating_point(self.x0)
        strategies = self.problem.initial_strategies()
        ilqGameSolver(self.problem).solve(self.x0, op, strategies)

        self.assertTrue(np.all(op.xs == self.x0))
        self.assertTrue(all(np.all(s.alphas == 0.0) for s in strategies))

    def test_iteration_budget(self):
        problem = double_integrator_game(self.goals, self.config.replace(max_iterations=1))
        solver = ilqGameSolver(problem)
        solution = solver.solve(self.x0)

        self.assertEqual(solution.n_iterations, 1)
        self.assertEqual(solution.status, SolverStatus.CONVERGED)
        self.assertFalse(solution.reached_tolerance)

    def test_log(self):
        log = SolverLog()
        with self.assertLogs("ilqgames.control", level="INFO") as logs:
            solution = ilqGameSolver(self.problem, log=log).solve(self.x0)

        self.assertEqual(len(log), solution.n_iterations + 1)
        self.assertEqual(len(logs.output), solution.n_iterations)
        self.assertTrue(np.allclose(log.final_operating_point.xs, solution.operating_point.xs))
        self.assertTrue(np.allclose(log.states()[0], 0.0))
        self.assertEqual(log.controls(1).shape, (len(log), self.problem.N, 2))
        self.assertLessEqual(log.max_differences()[-1], self.config.convergence_tolerance)

    def test_log_is_side_channel(self):
        with_log = ilqGameSolver(self.problem, log=SolverLog()).solve(self.x0)
        without_log = ilqGameSolver(self.problem).solve(self.x0)

        self.assertEqual(with_log.n_iterations, without_log.n_iterations)
        self.assertTrue(np.allclose(with_log.operating_point.xs, without_log.operating_point.xs))

    def test_hook_failure(self):
        solver = ilqGameSolver(self.problem, strategy_hook=lambda op, strategies: False)
        with self.assertRaises(StrategyModificationError):
            solver.solve(self.x0)
        self.assertEqual(solver.status, SolverStatus.FAILED)
        self.assertEqual(solver.n_iterations, 1)

    def test_hook_raises(self):
        def hook(operating_point, strategies):
            raise RuntimeError("hook broke")

        solver = ilqGameSolver(self.problem, strategy_hook=hook)
        with self.assertRaises(RuntimeError):
            solver.solve(self.x0)
        self.assertEqual(solver.status, SolverStatus.FAILED)

    def test_approximation_raises(self):
        problem = double_integrator_game(self.goals, self.config)

        class Broken(ReferenceCost):
            def quadraticize(self, z, t=0.0):
                raise FloatingPointError("bad derivative")

        problem.player_costs[0].add_state_cost(Broken(np.eye(8)))
        solver = ilqGameSolver(problem)
        with self.assertRaises(FloatingPointError):
            solver.solve(self.x0)
        self.assertEqual(solver.status, SolverStatus.FAILED)

    def test_exponentiated(self):
        self.problem.set_exponential_constant(0.1)
        solution = ilqGameSolver(self.problem).solve(self.x0)

        self.assertTrue(
            all(player_cost.exponential_constant == 0.1 for player_cost in self.problem.player_costs)
        )
        self.assertEqual(solution.status, SolverStatus.CONVERGED)
        self.assertTrue(solution.reached_tolerance)
        self.assertTrue(np.all(np.isfinite(solution.operating_point.xs)))
        self.assertTrue(all(np.all(np.isfinite(s.Ps)) for s in solution.strategies))

    def test_singular(self):
        problem = double_integrator_game(self.goals, self.config, control_weight=0.0)
        solver = ilqGameSolver(problem)
        with self.assertRaises(SingularGameError):
            solver.solve(self.x0)
        self.assertEqual(solver.status, SolverStatus.FAILED)

    def test_preconditions(self):
        solver = ilqGameSolver(self.problem)
        N = self.problem.N

        with self.assertRaises(ValueError):
            solver.solve(np.zeros(7))
        with self.assertRaises(ValueError):
            solver.solve(self.x0, initial_strategies=[Strategy.zeros(N, 8, 2)])
        with self.assertRaises(ValueError):
            solver.solve(
                self.x0, initial_strategies=[Strategy.zeros(N - 1, 8, 2), Strategy.zeros(N, 8, 2)]
            )
        with self.assertRaises(ValueError):
            solver.solve(self.x0, OperatingPoint.zeros(N + 1, 8, [2, 2]))

    def test_mismatched_problem(self):
        with self.assertRaises(ValueError):
            ilqGameProblem(self.problem.dynamics, self.problem.player_costs[:1], self.config)
        with self.assertRaises(ValueError):
            ilqGameProblem(
                self.problem.dynamics, self.problem.player_costs, self.config.replace(time_step=0.2)
            )


class TestRollout(unittest.TestCase):
    def test_feedback(self):
        dynamics = MultiDynamicalModel([DoubleIntDynamics4D(0.5)])
        T = 3
        reference = OperatingPoint.zeros(T, 4, [2], t0=2.0)
        strategy = Strategy.zeros(T, 4, 2)
        strategy.alphas[:] = [-1.0, 0.0]
        strategy.Ps[:, 1, 1] = 1.0

        x0 = np.array([0, 1.0, 0, 0])
        op = rollout(dynamics, [strategy], reference, x0)

        self.assertEqual(op.t0, 2.0)
        self.assertTrue(np.allclose(op.xs[0], x0))
        self.assertTrue(np.allclose(op.us[0][0], [1.0, -1.0]))
        self.assertTrue(np.allclose(op.xs[1], dynamics(x0, [np.array([1.0, -1.0])])))

    def test_same_buffer(self):
        reference = OperatingPoint.zeros(2, 4, [2])
        with self.assertRaises(ValueError):
            rollout(
                MultiDynamicalModel([DoubleIntDynamics4D(0.5)]),
                [Strategy.zeros(2, 4, 2)],
                reference,
                np.zeros(4),
                out=reference,
            )


class TestNonlinearGame(unittest.TestCase):
    """Two unicycles crossing paths on their way to swap sides"""

    def test_costs_decrease(self):
        config = SolverConfig(
            time_step=0.1, time_horizon=3.0, max_iterations=30, alpha_scaling=0.5
        )
        dynamics = MultiDynamicalModel(
            [UnicycleDynamics4D(config.time_step), UnicycleDynamics4D(config.time_step)]
        )
        goals = [np.array([2.0, 0.0]), np.array([0.0, 2.0])]

        proximity = ProximityCost([0, 1], [4, 5], 0.5, weight=10.0)
        player_costs = []
        for i, goal in enumerate(goals):
            player_cost = PlayerCost(f"p{i}")
            player_cost.add_state_cost(
                ReferenceCost(np.eye(2), goal, dims=[4 * i, 4 * i + 1])
            )
            player_cost.add_state_cost(proximity)
            player_cost.add_control_cost(i, ReferenceCost(0.1 * np.eye(2)))
            player_costs.append(player_cost)

        problem = ilqGameProblem(dynamics, player_costs, config)
        x0 = np.array([-2.0, 0.0, 0.0, 0.0, 0.0, -2.0, 0.0, np.pi / 2])

        initial_costs = compute_strategy_costs(
            player_costs,
            problem.initial_strategies(),
            problem.initial_operating_point(),
            dynamics,
            x0,
            config.time_step,
        )

        solution = ilqGameSolver(problem).solve(x0)
        final_costs = compute_strategy_costs(
            player_costs,
            solution.strategies,
            solution.operating_point,
            dynamics,
            x0,
            config.time_step,
        )

        self.assertEqual(solution.status, SolverStatus.CONVERGED)
        self.assertTrue(np.all(np.isfinite(solution.operating_point.xs)))
        self.assertTrue(np.all(final_costs < initial_costs))


if __name__ == "__main__":
    unittest.main()

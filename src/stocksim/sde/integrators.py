# src/stocksim/sde/integrators.py
from __future__ import annotations

import math


def euler_maruyama_step(x, drift, diffusion, dt: float, dW):
    """
    Single Euler-Maruyama step:
    X_{t+dt} = X_t + a(X_t)*dt + b(X_t)*dW
    Here we pass precomputed drift and diffusion values (scalars or arrays).
    """
    return x + drift * dt + diffusion * dW


def milstein_step(x, drift, diffusion, diff_derivative, dt: float, dW):
    """
    Single Milstein step:
    X_{t+dt} = X_t + a dt + b dW + 0.5 b b' (dW^2 - dt)
    where diff_derivative is b'(X_t)
    """
    return euler_maruyama_step(x, drift, diffusion, dt, dW) + 0.5 * diffusion * (
        diff_derivative * (dW * dW - dt)
    )


def platen_support(x, drift, diffusion, dt: float):
    """Supporting value X + a dt + b sqrt(dt) of Platen's explicit scheme."""
    return x + drift * dt + diffusion * math.sqrt(dt)


def platen_step(x, drift, diffusion, diffusion_at_support, dt: float, dW):
    """
    Platen's explicit order-1.0 scheme (Kloeden & Platen 11.1.3):
    X_{t+dt} = X_t + a dt + b dW + (b(Y) - b(X_t)) (dW^2 - dt) / (2 sqrt(dt))
    with Y the supporting value. The derivative b' of Milstein is replaced by
    a finite difference, so only b needs to be evaluated.
    """
    return euler_maruyama_step(x, drift, diffusion, dt, dW) + (
        diffusion_at_support - diffusion
    ) * (dW * dW - dt) / (2.0 * math.sqrt(dt))


def rk4_step(vol_prev, xi_prev, dt: float, alpha: float):
    """
    Classic RK4 step for dxi/dt = (vol - xi) / alpha with vol frozen at the
    left endpoint of the step.
    """
    k1 = (vol_prev - xi_prev) / alpha
    k2 = (vol_prev + 0.5 * dt * k1 - xi_prev) / alpha
    k3 = (vol_prev + 0.5 * dt * k2 - xi_prev) / alpha
    k4 = (vol_prev + dt * k3 - xi_prev) / alpha
    return xi_prev + dt / 6 * (k1 + 2 * k2 + 2 * k3 + k4)

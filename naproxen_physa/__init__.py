"""
Naproxen sodium exposure of the freshwater snail Physa

Statistical analysis of a four-week ecotoxicology trial in which 40 snails were
held at one of four naproxen sodium concentrations and measured weekly for shell
length, egg-sac production and survival, with daily feeding observations.

Core Components:
    - data: CSV loaders and schema normalisation
    - analysis: reshaping, model fitting, diagnostics, post-hoc contrasts, reports
    - visualization: publication figures (EPS) and optional interactive export

Responses and models:
    - Growth (weekly length change): linear mixed model, random intercept per snail
    - Egg sacs (weekly count): Poisson GEE, exchangeable within snail
    - Survival (week of death, right-censored): Cox proportional hazards
    - Feeding (fed yes/no per day): binomial GEE, exchangeable within snail

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

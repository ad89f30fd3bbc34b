"""
ScalpGate – Application Layer
===============================
Capa de casos de uso y orquestación.

Este módulo contiene:
- use_cases/: CandidateGenerator, SignalScheduler
- ports/: Interfaces hacia infraestructura

REGLA DE DEPENDENCIA:
Esta capa puede importar de:
- domain/ (entidades, servicios)
- state/ (estado en memoria)
- ports/ propios (interfaces hacia infra)

NO puede importar de:
- infrastructure/ (implementaciones concretas)
- presentation/ (API)
"""

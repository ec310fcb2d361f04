"""
Module 'payments' (feature-first): checkout, confirmation et remboursement des commandes.
Réunit logique panier, calcul des montants, adaptateurs Stripe/PayPal et orchestration.
Les sous-modules s'importent directement (academy.payments.service, .views, ...).
"""

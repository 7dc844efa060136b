from helminit.CLI import init

if __name__ == "__main__":
    # Same as the installed `helminit` command:
    #   python main.py --config helm.json --repo stable=https://charts.helm.sh/stable
    init()
